"""访客统计服务测试。"""

import redis

from app.middleware.request_logging import resolve_client_ip
from app.packages.knohub.services.visitor_service import (
    InMemoryVisitorBackend,
    VisitorBackend,
    VisitorService,
    visitor_service,
)


class _Clock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


def _service(clock: _Clock, hours: int = 24) -> VisitorService:
    return VisitorService(InMemoryVisitorBackend(), retention_hours=hours, clock=clock)


def test_counts_distinct_ips():
    clock = _Clock()
    service = _service(clock)

    for ip in ["10.0.0.1", "10.0.0.2", "10.0.0.1"]:
        service.record_ip(ip)

    assert service.unique_visitor_count() == 2


def test_blank_ip_is_ignored():
    service = _service(_Clock())

    service.record_ip("")
    service.record_ip("   ")
    service.record_ip(None)

    assert service.unique_visitor_count() == 0


def test_visitors_expire_after_retention_window():
    clock = _Clock()
    service = _service(clock, hours=1)

    service.record_ip("10.0.0.1")
    clock.advance(1800)
    service.record_ip("10.0.0.2")
    clock.advance(1801)

    assert service.unique_visitor_count() == 1


def test_revisit_refreshes_timestamp():
    clock = _Clock()
    service = _service(clock, hours=1)

    service.record_ip("10.0.0.1")
    clock.advance(3000)
    service.record_ip("10.0.0.1")
    clock.advance(3000)

    assert service.unique_visitor_count() == 1


def test_resolve_client_ip_prefers_forwarded_header():
    assert resolve_client_ip({"x-forwarded-for": "203.0.113.9, 10.0.0.1"}, "127.0.0.1") == "203.0.113.9"
    assert resolve_client_ip({"x-forwarded-for": "  "}, "127.0.0.1") == "127.0.0.1"
    assert resolve_client_ip({}, None) == ""


class _UnreachableBackend(VisitorBackend):
    def record(self, ip: str, seen_at: float) -> None:
        raise redis.ConnectionError("Connection refused")

    def count_since(self, cutoff: float) -> int:
        raise redis.ConnectionError("Connection refused")


def test_store_outage_is_not_fatal():
    service = VisitorService(_UnreachableBackend(), retention_hours=1, clock=_Clock())

    service.record_ip("10.0.0.1")

    assert service.unique_visitor_count() == 0


def test_requests_still_served_when_visitor_store_is_down(client, monkeypatch):
    monkeypatch.setattr(visitor_service, "_backend", _UnreachableBackend())

    health = client.get("/health")
    metrics = client.get("/api/metrics/active-users")

    assert health.status_code == 200
    assert health.json()["success"] is True
    assert metrics.status_code == 200
    assert metrics.json()["data"] == 0
