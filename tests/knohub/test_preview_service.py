"""预览服务测试：渲染器与转换器使用桩实现，不依赖 Java/LibreOffice。"""

import base64
from pathlib import Path

import pytest
from PIL import Image

from app.packages.knohub.core.exceptions import NotFoundError, WrongKindError
from app.packages.knohub.services.preview_service import (
    CircuitRenderer,
    DocumentConverter,
    LogisimCircuitRenderer,
    PreviewService,
    inline_images,
    is_valid_image,
)


class _PillowRenderer(CircuitRenderer):
    def __init__(self) -> None:
        self.calls = 0

    def render(self, input_path: Path, output_path: Path):
        self.calls += 1
        output_path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", (4, 4), "white").save(output_path, format="PNG")
        return output_path


class _NoopRenderer(CircuitRenderer):
    def render(self, input_path: Path, output_path: Path):
        return None


class _EchoConverter(DocumentConverter):
    def convert(self, doc_bytes: bytes) -> str:
        return f"<p>{doc_bytes.decode()}</p>"


@pytest.fixture()
def make_preview(engine_service, tmp_path):
    def _make(renderer=None, converter=None) -> PreviewService:
        return PreviewService(
            files=engine_service,
            renderer=renderer or _NoopRenderer(),
            converter=converter or _EchoConverter(),
            preview_root=tmp_path / "previews",
        )

    return _make


def test_circuit_preview_is_rendered_once_and_cached(db_session_fixture, make_resource, engine_service, make_preview):
    resource = make_resource()
    item = engine_service.upload(
        db_session_fixture, resource_id=resource.id, folder_id=None, filename="adder.circ", content=b"<project/>"
    )
    renderer = _PillowRenderer()
    service = make_preview(renderer=renderer)

    first = service.get_circuit_preview(db_session_fixture, item.id)
    second = service.get_circuit_preview(db_session_fixture, item.id)

    assert first == second
    assert first.name == f"{item.id}.png"
    assert first.parent.name == str(resource.id)
    assert renderer.calls == 1


def test_circuit_preview_errors(db_session_fixture, make_resource, engine_service, make_preview):
    resource = make_resource()
    circ = engine_service.upload(
        db_session_fixture, resource_id=resource.id, folder_id=None, filename="a.circ", content=b"x"
    )
    txt = engine_service.upload(
        db_session_fixture, resource_id=resource.id, folder_id=None, filename="a.txt", content=b"x"
    )
    service = make_preview()

    with pytest.raises(NotFoundError, match="暂无可用预览"):
        service.get_circuit_preview(db_session_fixture, circ.id)
    with pytest.raises(WrongKindError, match="仅支持 .circ 文件预览"):
        service.get_circuit_preview(db_session_fixture, txt.id)
    with pytest.raises(NotFoundError):
        service.get_circuit_preview(db_session_fixture, 999999)


def test_doc_preview_uses_converter(db_session_fixture, make_resource, engine_service, make_preview):
    resource = make_resource()
    doc = engine_service.upload(
        db_session_fixture, resource_id=resource.id, folder_id=None, filename="Lecture.DOC", content=b"hello"
    )
    folder = engine_service.create_folder(
        db_session_fixture, resource_id=resource.id, parent_folder_id=None, name="docs"
    )
    service = make_preview()

    assert service.render_doc_html(db_session_fixture, doc.id) == "<p>hello</p>"
    with pytest.raises(WrongKindError, match="仅支持 .doc 文件预览"):
        service.render_doc_html(db_session_fixture, folder.id)


def test_logisim_command_template():
    renderer = LogisimCircuitRenderer(
        jar_path="/opt/logisim.jar",
        command_template="java -Xmx256m -jar {jar} -tty image -export {{output}} {input}",
    )

    command = renderer.build_command(Path("/tmp/in.circ"), Path("/tmp/out.png"))

    assert command == ["java", "-Xmx256m", "-jar", "/opt/logisim.jar", "-tty", "image", "-export", "/tmp/out.png", "/tmp/in.circ"]


def test_logisim_default_command_and_disabled(tmp_path):
    renderer = LogisimCircuitRenderer(enabled=False, jar_path="/opt/logisim.jar")

    assert renderer.build_command(Path("in.circ"), Path("out.png")) == [
        "java", "-jar", "/opt/logisim.jar", "-export", "out.png", "in.circ",
    ]
    assert renderer.render(tmp_path / "in.circ", tmp_path / "out.png") is None
    assert LogisimCircuitRenderer(jar_path=None).render(tmp_path / "in.circ", tmp_path / "out.png") is None


def test_logisim_missing_binary_returns_none(tmp_path):
    renderer = LogisimCircuitRenderer(
        jar_path="/opt/logisim.jar",
        command_template="/nonexistent/knohub-render {input} {output}",
    )

    assert renderer.render(tmp_path / "in.circ", tmp_path / "out.png") is None


def test_is_valid_image(tmp_path):
    good = tmp_path / "ok.png"
    Image.new("RGB", (2, 2)).save(good, format="PNG")
    bad = tmp_path / "bad.png"
    bad.write_bytes(b"not an image")

    assert is_valid_image(good)
    assert not is_valid_image(bad)
    assert not is_valid_image(tmp_path / "missing.png")


def test_inline_images(tmp_path):
    (tmp_path / "img.png").write_bytes(b"\x89PNG")
    html = '<p><img src="img.png" alt="a"/><img src="https://cdn/x.png"/><img src="../etc/passwd"/></p>'

    result = inline_images(html, tmp_path)

    encoded = base64.b64encode(b"\x89PNG").decode("ascii")
    assert f'src="data:image/png;base64,{encoded}"' in result
    assert 'src="https://cdn/x.png"' in result
    assert 'src="../etc/passwd"' in result
