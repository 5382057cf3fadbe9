"""枚举定义：约束资源类型、资源标签与拖拽放置位置的可选值。"""

from enum import Enum


class ResourceTypeEnum(str, Enum):
    COURSE = "course"
    TECH = "tech"
    INFO = "info"


class ResourceTagEnum(str, Enum):
    """资源卡片上的高亮标签。"""

    NEW = "New"
    HOT = "Hot"
    REC = "Rec"


class DropPositionEnum(str, Enum):
    """拖拽排序时相对目标项的放置位置。"""

    BEFORE = "before"
    AFTER = "after"
    INSIDE = "inside"
