"""业务包注册表：``APP_ACTIVE_PACKAGE`` 决定主应用挂载哪个包，默认 knohub。"""

from __future__ import annotations

import os
from typing import Dict

from . import knohub
from .types import AppPackage

DEFAULT_PACKAGE = knohub.package.name

PACKAGE_REGISTRY: Dict[str, AppPackage] = {pkg.name: pkg for pkg in (knohub.package,)}


def get_active_package() -> AppPackage:
    package_name = os.getenv("APP_ACTIVE_PACKAGE") or DEFAULT_PACKAGE
    if package_name not in PACKAGE_REGISTRY:
        available = ", ".join(sorted(PACKAGE_REGISTRY))
        raise RuntimeError(f"未知的业务包 '{package_name}'，可选：{available}")
    return PACKAGE_REGISTRY[package_name]


__all__ = ["PACKAGE_REGISTRY", "get_active_package"]
