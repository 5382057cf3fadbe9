"""时区工具方法：支持根据配置动态获取当前时区。"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from zoneinfo import ZoneInfo

from app.packages.knohub.core.config import get_settings
from app.packages.knohub.core.constants import DATE_FORMAT


def get_timezone() -> ZoneInfo:
    """返回配置指定的时区信息。"""
    return get_settings().timezone_info


def now() -> datetime:
    """返回当前时区的时间。"""
    return datetime.now(get_timezone())


def today() -> date:
    return now().date()


def to_local(value: Optional[datetime]) -> Optional[datetime]:
    """将 ``datetime`` 转换为配置时区，支持处理空值与无时区对象。"""
    if value is None:
        return None
    tz = get_timezone()
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def format_date(value: Optional[date | datetime]) -> Optional[str]:
    """将日期格式化为 ``YYYY-MM-DD`` 字符串，供资源卡片展示。"""
    if value is None:
        return None
    if isinstance(value, datetime):
        value = to_local(value)
    return value.strftime(DATE_FORMAT)
