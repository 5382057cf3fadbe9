"""Name utilities: extension handling, storage names and size formatting.

Rules shared by the file engine and the storage backends:
- Extension is the text after the last dot, only when that dot is past position 0
  and not the final character ('.bashrc' and 'notes.' have no extension);
- Storage names are '<opaque-id>_<logical name>'; the opaque id never contains '_'.
"""

from __future__ import annotations

import os
import uuid
from typing import Optional

from app.packages.knohub.core.constants import DEFAULT_UPLOAD_NAME


def extract_extension(filename: str | None) -> str:
    name = filename or ""
    last_dot = name.rfind(".")
    if 0 < last_dot < len(name) - 1:
        return name[last_dot + 1 :]
    return ""


def split_base_name(filename: str) -> str:
    last_dot = filename.rfind(".")
    return filename[:last_dot] if last_dot > 0 else filename


def normalize_upload_name(filename: str | None) -> str:
    # browsers on Windows may send 'C:\\dir\\a.txt'
    name = os.path.basename((filename or "").replace("\\", "/")).strip()
    return name or DEFAULT_UPLOAD_NAME


def pin_extension(candidate: str, current_ext: Optional[str]) -> str:
    """Keep a file's extension stable: 'report.txt' on a pdf becomes 'report.pdf'."""
    if not current_ext:
        return candidate
    if extract_extension(candidate).lower() == current_ext.lower():
        return candidate
    return f"{split_base_name(candidate)}.{current_ext}"


def new_storage_name(filename: str) -> str:
    return f"{uuid.uuid4().hex}_{filename}"


def storage_prefix(storage_name: str) -> str:
    """Opaque id before the first '_'; a fresh one when the name carries none."""
    idx = storage_name.find("_")
    return storage_name[:idx] if idx > 0 else uuid.uuid4().hex


def display_name_from_storage(storage_name: str) -> str:
    idx = storage_name.find("_")
    if 0 < idx < len(storage_name) - 1:
        return storage_name[idx + 1 :]
    return storage_name


def format_file_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes}B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f}KB"
    if size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f}MB"
    return f"{size_bytes / (1024 * 1024 * 1024):.1f}GB"
