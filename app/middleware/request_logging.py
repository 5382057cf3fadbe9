"""Request logging middleware: correlation id, visitor tracking and access log.

If the incoming request carries X-Request-Id it is reused, otherwise a UUID4 is
generated. The client IP (first X-Forwarded-For entry, else the peer address)
is recorded for unique-visitor counting; both values are bound to the logging
context for the duration of the request and the id is echoed in the response.
"""

from __future__ import annotations

import time
import uuid
from typing import Optional

from starlette.concurrency import run_in_threadpool
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.packages.knohub.core.logger import logger, set_request_context
from app.packages.knohub.services.visitor_service import VisitorService, visitor_service


def resolve_client_ip(headers: dict[str, str], peer: Optional[str]) -> str:
    forwarded = headers.get("x-forwarded-for", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    return peer or ""


class RequestLoggingMiddleware:
    def __init__(self, app: ASGIApp, visitors: Optional[VisitorService] = None) -> None:
        self.app = app
        self.visitors = visitors or visitor_service

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        headers = {k.decode("latin-1").lower(): v.decode("latin-1") for k, v in scope.get("headers", [])}
        request_id = headers.get("x-request-id") or str(uuid.uuid4())
        client = scope.get("client")
        ip = resolve_client_ip(headers, client[0] if client else None)
        set_request_context(request_id, ip or None)
        # Redis 为同步客户端，放到线程池执行，避免阻塞事件循环
        await run_in_threadpool(self.visitors.record_ip, ip)

        started = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                message.setdefault("headers", [])
                message["headers"].append((b"x-request-id", request_id.encode("latin-1")))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            line = "%s %s -> %s (%.1f ms) ua=%s"
            args = (
                scope.get("method"),
                scope.get("path"),
                status_code,
                elapsed_ms,
                headers.get("user-agent", "-"),
            )
            if status_code >= 500:
                logger.error(line, *args)
            elif status_code >= 400:
                logger.warning(line, *args)
            else:
                logger.info(line, *args)
            set_request_context(None)
