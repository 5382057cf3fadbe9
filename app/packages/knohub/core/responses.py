"""响应封装：构建系统统一的返回结构。"""

from typing import Any


def create_response(message: str, data: Any = None, *, success: bool = True) -> dict[str, Any]:
    """按照 ``success``、``message``、``data`` 组合出统一响应体。"""
    return {"success": success, "message": message, "data": data}
