"""访客统计：按客户端 IP 统计滚动时间窗口内的独立访客数。

过期记录在每次写入与读取时惰性清理，不依赖后台定时任务。
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

import redis

from app.packages.knohub.core.config import get_settings
from app.packages.knohub.core.logger import logger

Clock = Callable[[], float]


class VisitorBackend:
    """访客存储后端基类。"""

    def record(self, ip: str, seen_at: float) -> None:  # pragma: no cover - interface definition
        raise NotImplementedError

    def count_since(self, cutoff: float) -> int:  # pragma: no cover
        raise NotImplementedError


class RedisVisitorBackend(VisitorBackend):
    """基于 Redis 有序集合，score 为最近一次访问时间戳。"""

    KEY = "knohub:visitors"

    def __init__(self, url: str) -> None:
        self._client = redis.Redis.from_url(url, decode_responses=True)
        self._client.ping()

    def record(self, ip: str, seen_at: float) -> None:
        self._client.zadd(self.KEY, {ip: seen_at})

    def count_since(self, cutoff: float) -> int:
        self._client.zremrangebyscore(self.KEY, "-inf", f"({cutoff}")
        return int(self._client.zcard(self.KEY))


class InMemoryVisitorBackend(VisitorBackend):
    """进程内实现，用于测试或缺少 Redis 时的回退。"""

    def __init__(self) -> None:
        self._store: dict[str, float] = {}
        self._lock = threading.Lock()

    def record(self, ip: str, seen_at: float) -> None:
        with self._lock:
            self._store[ip] = seen_at

    def count_since(self, cutoff: float) -> int:
        with self._lock:
            expired = [ip for ip, seen_at in self._store.items() if seen_at < cutoff]
            for ip in expired:
                del self._store[ip]
            return len(self._store)


class VisitorService:
    def __init__(
        self,
        backend: Optional[VisitorBackend] = None,
        *,
        retention_hours: Optional[int] = None,
        clock: Clock = time.time,
    ) -> None:
        self._backend = backend
        hours = retention_hours if retention_hours is not None else get_settings().visitor_retention_hours
        self.retention_seconds = max(hours, 0) * 3600
        self._clock = clock

    @property
    def backend(self) -> VisitorBackend:
        if self._backend is None:
            self._backend = build_visitor_backend()
        return self._backend

    def record_ip(self, ip: Optional[str]) -> None:
        """记录一次访问，空白 IP 忽略。"""
        value = (ip or "").strip()
        if not value:
            return
        now = self._clock()
        try:
            self.backend.record(value, now)
            # 写入时顺带清理过期记录
            self.backend.count_since(now - self.retention_seconds)
        except redis.RedisError as exc:
            logger.warning("Visitor store unavailable, visit from %s not recorded: %s", value, exc)

    def unique_visitor_count(self) -> int:
        """访客存储不可用时返回 0。"""
        try:
            return self.backend.count_since(self._clock() - self.retention_seconds)
        except redis.RedisError as exc:
            logger.warning("Visitor store unavailable, reporting 0 visitors: %s", exc)
            return 0


def build_visitor_backend() -> VisitorBackend:
    settings = get_settings()
    if (settings.visitor_store or "").lower() != "redis":
        return InMemoryVisitorBackend()
    try:
        backend = RedisVisitorBackend(settings.redis_url)
        logger.info("Visitor store initialized with Redis at %s", settings.redis_url)
        return backend
    except redis.RedisError as exc:
        logger.warning("Redis unavailable (%s), falling back to in-memory visitor store", exc)
        return InMemoryVisitorBackend()


visitor_service = VisitorService()
