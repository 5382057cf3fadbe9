"""预览服务：.circ 电路图渲染为图片、.doc 文档转换为 HTML。

- 电路图：调用外部 Logisim 构建渲染，产物用 Pillow 校验，缓存在
  ``<PREVIEW_DIR>/<resource_id>/<file_id>.<fmt>``，之后直接复用；
- 文档：调用 LibreOffice 无界面转换，HTML 中引用的图片内联为 data URI。

渲染器与转换器作为可替换的能力注入，便于测试时替换为桩实现。
"""

from __future__ import annotations

import base64
import mimetypes
import re
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional
from urllib.parse import unquote

from PIL import Image
from sqlalchemy.orm import Session

from app.packages.knohub.core.config import Settings, get_settings
from app.packages.knohub.core.constants import CIRCUIT_FILE_TYPE, LEGACY_DOC_FILE_TYPE
from app.packages.knohub.core.exceptions import DocumentRenderError, NotFoundError, WrongKindError
from app.packages.knohub.core.logger import logger
from app.packages.knohub.crud.file_item import file_item_crud
from app.packages.knohub.models.file_item import FileItem
from app.packages.knohub.services.file_service import FileService, file_service

_IMG_SRC_PATTERN = re.compile(r"(<img\b[^>]*?\bsrc\s*=\s*)([\"'])(.*?)\2", re.IGNORECASE | re.DOTALL)


def is_valid_image(path: Path) -> bool:
    """用 Pillow 校验图片文件是否完整可读。"""
    if not path.is_file() or path.stat().st_size == 0:
        return False
    try:
        with Image.open(path) as img:
            img.verify()
    except (OSError, SyntaxError, ValueError):
        return False
    return True


# ------------------------------------------
# 电路图渲染
# ------------------------------------------


class CircuitRenderer:
    output_format = "png"

    def render(self, input_path: Path, output_path: Path) -> Optional[Path]:
        """渲染成功返回输出路径，否则返回 ``None``。"""
        raise NotImplementedError


class LogisimCircuitRenderer(CircuitRenderer):
    def __init__(
        self,
        *,
        enabled: bool = True,
        jar_path: Optional[str] = None,
        command_template: Optional[str] = None,
        timeout_seconds: int = 20,
        output_format: str = "png",
    ) -> None:
        self.enabled = enabled
        self.jar_path = jar_path
        self.command_template = command_template
        self.timeout_seconds = timeout_seconds
        self.output_format = (output_format or "png").lower()

    @classmethod
    def from_settings(cls, settings: Settings) -> "LogisimCircuitRenderer":
        return cls(
            enabled=settings.logisim_enabled,
            jar_path=settings.logisim_jar_path,
            command_template=settings.logisim_command_template,
            timeout_seconds=settings.logisim_timeout_seconds,
            output_format=settings.logisim_output_format,
        )

    def build_command(self, input_path: Path, output_path: Path) -> List[str]:
        """模板支持 ``{jar}``、``{input}``、``{output}`` 占位符；未配置时使用默认导出命令。"""
        jar = str(self.jar_path or "")
        if not self.command_template:
            return ["java", "-jar", jar, "-export", str(output_path), str(input_path)]
        values = {"jar": jar, "input": str(input_path), "output": str(output_path)}
        command = []
        for token in shlex.split(self.command_template):
            for key, value in values.items():
                token = token.replace("{{%s}}" % key, value).replace("{%s}" % key, value)
            command.append(token)
        return command

    def render(self, input_path: Path, output_path: Path) -> Optional[Path]:
        if not self.enabled:
            logger.debug("Logisim rendering skipped because it is disabled.")
            return None
        if not self.jar_path:
            logger.warning("Logisim jar path is not configured, skip rendering %s", input_path)
            return None

        output_path.parent.mkdir(parents=True, exist_ok=True)
        command = self.build_command(input_path, output_path)
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Logisim render timed out after %ss for %s", self.timeout_seconds, input_path)
            return None
        except OSError as exc:
            logger.warning("Logisim render failed to start for %s: %s", input_path, exc)
            return None

        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            logger.warning("Logisim render exited with %s for %s: %s", completed.returncode, input_path, stderr)
            return None
        if not is_valid_image(output_path):
            logger.warning("Logisim render produced no valid image for %s", input_path)
            output_path.unlink(missing_ok=True)
            return None
        return output_path


# ------------------------------------------
# 文档转换
# ------------------------------------------


class DocumentConverter:
    def convert(self, doc_bytes: bytes) -> str:
        """将 .doc 内容转换为 HTML 字符串，失败时抛出 ``DocumentRenderError``。"""
        raise NotImplementedError


def inline_images(html: str, base_dir: Path) -> str:
    """把 HTML 中引用的本地图片替换为 ``data:<mime>;base64,...``。"""
    root = base_dir.resolve()

    def _replace(match: re.Match) -> str:
        src = match.group(3)
        if src.startswith(("data:", "http://", "https://")):
            return match.group(0)
        candidate = (root / unquote(src)).resolve()
        try:
            candidate.relative_to(root)
        except ValueError:
            return match.group(0)
        if not candidate.is_file():
            return match.group(0)
        mime = mimetypes.guess_type(candidate.name)[0] or "image/png"
        encoded = base64.b64encode(candidate.read_bytes()).decode("ascii")
        return f"{match.group(1)}{match.group(2)}data:{mime};base64,{encoded}{match.group(2)}"

    return _IMG_SRC_PATTERN.sub(_replace, html)


class LibreOfficeDocConverter(DocumentConverter):
    def __init__(self, *, soffice_path: str = "soffice", timeout_seconds: int = 60) -> None:
        self.soffice_path = soffice_path
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "LibreOfficeDocConverter":
        return cls(soffice_path=settings.soffice_path, timeout_seconds=settings.soffice_timeout_seconds)

    def convert(self, doc_bytes: bytes) -> str:
        with tempfile.TemporaryDirectory(prefix="knohub-doc-") as workdir:
            source = Path(workdir) / "source.doc"
            out_dir = Path(workdir) / "html"
            source.write_bytes(doc_bytes)
            command = [
                self.soffice_path,
                "--headless",
                "--convert-to",
                "html",
                "--outdir",
                str(out_dir),
                str(source),
            ]
            try:
                completed = subprocess.run(command, capture_output=True, timeout=self.timeout_seconds, check=False)
            except subprocess.TimeoutExpired as exc:
                raise DocumentRenderError("文档预览失败: 转换超时") from exc
            except OSError as exc:
                logger.error("Failed to start LibreOffice: %s", exc)
                raise DocumentRenderError(f"文档预览失败: {exc}") from exc

            html_path = out_dir / "source.html"
            if completed.returncode != 0 or not html_path.is_file():
                stderr = completed.stderr.decode("utf-8", errors="replace").strip()
                logger.error("Failed to render .doc to HTML: %s", stderr or completed.returncode)
                raise DocumentRenderError(f"文档预览失败: {stderr or '转换未生成结果'}")
            html = html_path.read_text(encoding="utf-8", errors="replace")
            return inline_images(html, out_dir)


# ------------------------------------------
# 预览服务
# ------------------------------------------


class PreviewService:
    def __init__(
        self,
        *,
        files: Optional[FileService] = None,
        renderer: Optional[CircuitRenderer] = None,
        converter: Optional[DocumentConverter] = None,
        preview_root: Optional[Path] = None,
    ) -> None:
        settings = get_settings()
        self._files = files or file_service
        self.renderer = renderer or LogisimCircuitRenderer.from_settings(settings)
        self.converter = converter or LibreOfficeDocConverter.from_settings(settings)
        self.preview_root = Path(preview_root or settings.preview_directory)

    def get_circuit_preview(self, db: Session, file_id: int) -> Path:
        """返回电路图预览图片路径：命中缓存直接返回，否则渲染后写入缓存。"""
        item = self._get_file(db, file_id)
        if item.type != CIRCUIT_FILE_TYPE:
            raise WrongKindError("仅支持 .circ 文件预览")

        target = self.preview_root / str(item.resource_id) / f"{item.id}.{self.renderer.output_format}"
        if is_valid_image(target):
            return target

        content = self._files.storage.read_bytes(item.storage_path or "")
        with tempfile.TemporaryDirectory(prefix="knohub-circ-") as workdir:
            source = Path(workdir) / f"{item.id}.circ"
            source.write_bytes(content)
            rendered = self.renderer.render(source, target)
        if rendered is None:
            raise NotFoundError("暂无可用预览")
        return rendered

    def render_doc_html(self, db: Session, file_id: int) -> str:
        item = self._get_file(db, file_id, folder_msg="仅支持 .doc 文件预览")
        if (item.type or "").lower() != LEGACY_DOC_FILE_TYPE:
            raise WrongKindError("仅支持 .doc 文件预览")
        if not item.storage_path:
            raise NotFoundError("未找到物理文件")
        content = self._files.storage.read_bytes(item.storage_path)
        return self.converter.convert(content)

    @staticmethod
    def _get_file(db: Session, file_id: int, *, folder_msg: str = "这是文件夹，无法预览") -> FileItem:
        item = file_item_crud.get(db, file_id)
        if item is None:
            raise NotFoundError(f"文件不存在: {file_id}")
        if item.is_folder:
            raise WrongKindError(folder_msg)
        return item


preview_service = PreviewService()
