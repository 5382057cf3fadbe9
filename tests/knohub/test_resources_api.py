"""资源接口集成测试。"""

import io

from fastapi.testclient import TestClient


def _create(client: TestClient, **overrides) -> dict:
    payload = {"type": "course", "title": "计算机组成原理", "description": "实验资料", "tag": "hot"}
    payload.update(overrides)
    resp = client.post("/api/resources", json=payload)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def test_create_and_get_resource(client: TestClient):
    created = _create(client)

    assert created["type"] == "course"
    assert created["tag"] == "Hot"
    assert created["files"] == []
    assert len(created["updateDate"]) == 10

    resp = client.get(f"/api/resources/{created['id']}")
    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is True
    assert body["data"]["title"] == "计算机组成原理"


def test_create_resource_rejects_unknown_type(client: TestClient):
    resp = client.post("/api/resources", json={"type": "video", "title": "x"})

    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "无效的资源类型: video", "data": None}


def test_create_resource_requires_title(client: TestClient):
    resp = client.post("/api/resources", json={"type": "course"})

    assert resp.status_code == 422
    assert resp.json()["success"] is False


def test_list_by_type_and_search(client: TestClient):
    tech = _create(client, type="tech", title="Verilog 入门", description="HDL basics", tag=None)
    _create(client, type="info", title="考试安排", description=None, tag="New")

    by_type = client.get("/api/resources/type/TECH").json()["data"]
    assert tech["id"] in [item["id"] for item in by_type]
    assert all(item["type"] == "tech" for item in by_type)

    bad = client.get("/api/resources/type/movie")
    assert bad.status_code == 400
    assert bad.json()["message"] == "无效的资源类型: movie"

    found = client.get("/api/resources/search", params={"keyword": "hdl"}).json()["data"]
    assert [item["id"] for item in found] == [tech["id"]]


def test_update_resource_replaces_fields(client: TestClient):
    created = _create(client)

    resp = client.put(
        f"/api/resources/{created['id']}",
        json={"type": "info", "title": "新标题", "description": None},
    )

    data = resp.json()["data"]
    assert resp.status_code == 200
    assert resp.json()["message"] == "资源更新成功"
    assert data["type"] == "info"
    assert data["title"] == "新标题"
    assert data["tag"] is None


def test_delete_resource_soft_deletes_files(client: TestClient):
    created = _create(client)
    rid = created["id"]
    client.post(f"/api/files/{rid}/upload", files={"file": ("a.txt", io.BytesIO(b"hi"), "text/plain")})

    resp = client.delete(f"/api/resources/{rid}")
    assert resp.status_code == 200
    assert resp.json()["message"] == "资源删除成功"

    missing = client.get(f"/api/resources/{rid}")
    assert missing.status_code == 404
    assert missing.json()["message"] == f"资源不存在或已删除: {rid}"
    assert client.get(f"/api/files/{rid}").json()["data"] == []
    assert all(item["id"] != rid for item in client.get("/api/resources").json()["data"])


def test_resource_embeds_file_tree(client: TestClient):
    rid = _create(client)["id"]
    folder = client.post(f"/api/files/{rid}/folders", json={"name": "labs"}).json()["data"]
    client.post(
        f"/api/files/{rid}/upload",
        params={"folderId": folder["id"]},
        files={"file": ("lab1.circ", io.BytesIO(b"<project/>"), "application/xml")},
    )

    files = client.get(f"/api/resources/{rid}").json()["data"]["files"]

    assert files[0]["name"] == "labs"
    assert files[0]["children"][0]["name"] == "lab1.circ"
    assert files[0]["children"][0]["previewUrl"].endswith("/preview")
