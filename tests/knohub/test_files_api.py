"""文件树接口集成测试（LOCAL 存储）。"""

import io

from fastapi.testclient import TestClient

from app.packages.knohub.core.config import get_settings


def _resource(client: TestClient) -> int:
    resp = client.post("/api/resources", json={"type": "course", "title": "数字逻辑"})
    return resp.json()["data"]["id"]


def _upload(client: TestClient, rid: int, name: str, content: bytes = b"data", folder_id=None):
    params = {"folderId": folder_id} if folder_id is not None else None
    return client.post(
        f"/api/files/{rid}/upload",
        params=params,
        files={"file": (name, io.BytesIO(content), "application/octet-stream")},
    )


def test_upload_list_and_download(client: TestClient):
    rid = _resource(client)

    resp = _upload(client, rid, "notes.txt", b"hello")
    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is True
    assert body["message"] == "文件上传成功"
    item = body["data"]
    assert item["type"] == "txt"
    assert item["size"] == "5B"
    assert item["isFolder"] is False

    tree = client.get(f"/api/files/{rid}").json()["data"]
    assert [node["name"] for node in tree] == ["notes.txt"]

    down = client.get(item["url"])
    assert down.status_code == 200
    assert down.content == b"hello"
    assert "filename*=UTF-8''notes.txt" in down.headers["content-disposition"]


def test_duplicate_upload_returns_conflict(client: TestClient):
    rid = _resource(client)
    _upload(client, rid, "a.txt")

    resp = _upload(client, rid, "a.txt")

    assert resp.status_code == 409
    assert resp.json() == {"success": False, "message": "同名文件已存在: a.txt", "data": None}


def test_upload_to_missing_resource_returns_not_found(client: TestClient):
    resp = _upload(client, 987654, "a.txt")

    assert resp.status_code == 404
    assert resp.json()["message"] == "资源不存在: 987654"


def test_oversized_upload_returns_413(client: TestClient, monkeypatch):
    rid = _resource(client)
    settings = get_settings()
    monkeypatch.setattr(settings, "max_upload_size_mb", 1)

    resp = _upload(client, rid, "big.bin", b"0" * (1024 * 1024 + 1))

    assert resp.status_code == 413
    assert resp.json()["message"] == "文件过大，单个文件或请求大小不能超过 1MB"
    assert client.get(f"/api/files/{rid}").json()["data"] == []


def test_batch_upload(client: TestClient):
    rid = _resource(client)

    resp = client.post(
        f"/api/files/{rid}/upload/batch",
        files=[
            ("files", ("a.txt", io.BytesIO(b"1"), "text/plain")),
            ("files", ("b.txt", io.BytesIO(b"2"), "text/plain")),
        ],
    )

    assert resp.status_code == 200
    assert resp.json()["message"] == "批量上传成功"
    assert [item["name"] for item in resp.json()["data"]] == ["a.txt", "b.txt"]


def test_folder_lifecycle(client: TestClient):
    rid = _resource(client)
    folder = client.post(f"/api/files/{rid}/folders", json={"name": "docs", "parentFolderId": None}).json()["data"]
    _upload(client, rid, "inner.txt", folder_id=folder["id"])

    dup = client.post(f"/api/files/{rid}/folders", json={"name": "docs"})
    assert dup.status_code == 409

    empty = client.post(f"/api/files/{rid}/folders", json={"name": "  "})
    assert empty.status_code == 400
    assert empty.json()["message"] == "名称不能为空"

    wrong = client.delete(f"/api/files/{folder['id']}")
    assert wrong.status_code == 400
    assert wrong.json()["message"] == "这是文件夹，请使用文件夹删除接口"

    resp = client.delete(f"/api/files/folders/{folder['id']}")
    assert resp.status_code == 200
    assert resp.json()["message"] == "文件夹删除成功"
    assert client.get(f"/api/files/{rid}").json()["data"] == []


def test_delete_file_then_reupload(client: TestClient):
    rid = _resource(client)
    first = _upload(client, rid, "notes.txt").json()["data"]

    resp = client.delete(f"/api/files/{first['id']}")
    assert resp.status_code == 200
    assert resp.json()["message"] == "文件删除成功"

    again = _upload(client, rid, "notes.txt")
    assert again.status_code == 200

    missing = client.delete(f"/api/files/{first['id']}")
    assert missing.status_code == 404


def test_rename_and_reorder(client: TestClient):
    rid = _resource(client)
    a = _upload(client, rid, "a.pdf").json()["data"]
    _upload(client, rid, "b.pdf")
    c = _upload(client, rid, "c.pdf").json()["data"]

    renamed = client.put(f"/api/files/{a['id']}/rename", json={"newName": "report.txt"})
    assert renamed.status_code == 200
    assert renamed.json()["message"] == "重命名成功"
    assert renamed.json()["data"]["name"] == "report.pdf"

    resp = client.post("/api/files/reorder", json={"dragId": c["id"], "dropId": a["id"], "position": "before"})
    assert resp.status_code == 200
    assert resp.json()["message"] == "排序成功"
    assert [n["name"] for n in client.get(f"/api/files/{rid}").json()["data"]] == ["c.pdf", "report.pdf", "b.pdf"]

    bad = client.post("/api/files/reorder", json={"dragId": c["id"], "dropId": a["id"], "position": "inside"})
    assert bad.status_code == 400
    assert bad.json()["message"] == "只能将文件拖入文件夹"


def test_download_missing_returns_not_found(client: TestClient):
    rid = _resource(client)

    resp = client.get(f"/api/files/{rid}/download/abc_missing.txt")

    assert resp.status_code == 404
    assert resp.json()["success"] is False


def test_doc_preview_rejects_other_types(client: TestClient):
    rid = _resource(client)
    item = _upload(client, rid, "a.txt").json()["data"]

    resp = client.get(f"/api/files/{item['id']}/html")

    assert resp.status_code == 400
    assert resp.json()["message"] == "仅支持 .doc 文件预览"


def test_circuit_preview_unavailable_when_renderer_disabled(client: TestClient):
    rid = _resource(client)
    item = _upload(client, rid, "adder.circ", b"<project/>").json()["data"]

    resp = client.get(f"/api/files/{item['id']}/preview")

    assert resp.status_code == 404
    assert resp.json()["message"] == "暂无可用预览"


def test_request_id_and_metrics(client: TestClient):
    resp = client.get("/health", headers={"X-Request-Id": "req-123", "X-Forwarded-For": "203.0.113.9, 10.0.0.1"})
    assert resp.status_code == 200
    assert resp.headers["x-request-id"] == "req-123"

    metrics = client.get("/api/metrics/active-users").json()
    assert metrics["success"] is True
    assert metrics["data"] >= 1


def test_unknown_route_uses_envelope(client: TestClient):
    resp = client.get("/api/nothing-here")

    assert resp.status_code == 404
    assert resp.json()["success"] is False
