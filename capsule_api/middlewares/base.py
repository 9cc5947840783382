"""Request middleware chain run ahead of route handlers."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from robyn import Request

from capsule_api.core.logger import LogIcon, logger
from capsule_api.models.files import RequestFieldMap

MULTIPART_FORM_DATA = "multipart/form-data"


@dataclass
class RequestContext:
    """Mutable per-request state passed along the middleware chain."""

    endpoint: str
    content_type: str = ""
    body: bytes = b""
    fields: RequestFieldMap = field(default_factory=dict)

    @property
    def is_multipart(self) -> bool:
        return MULTIPART_FORM_DATA in self.content_type

    @classmethod
    def from_request(cls, request: Request, endpoint: str) -> "RequestContext":
        body = getattr(request, "body", b"") or b""
        if isinstance(body, str):
            body = body.encode("utf-8")
        content_type = request.headers.get("content-type") or ""
        return cls(endpoint=endpoint, content_type=content_type, body=bytes(body))


CallNext = Callable[[RequestContext], Awaitable[Any]]


class BaseMiddleware(ABC):
    """Abstract base class for middlewares.

    ``dispatch`` either returns ``await call_next(context)`` or raises. Errors are
    never turned into responses here.
    """

    endpoints: frozenset[str]

    def __init__(self, endpoints: frozenset[str] | list[str] | None = None) -> None:
        self.endpoints = frozenset(endpoints) if endpoints else frozenset()

    def applies_to(self, endpoint: str) -> bool:
        return not self.endpoints or endpoint in self.endpoints

    @abstractmethod
    async def dispatch(self, context: RequestContext, call_next: CallNext) -> Any:
        """Process the context, then continue the chain."""


class MiddlewareHandler:
    """Ordered middleware chain shared by routers."""

    def __init__(self) -> None:
        self._middlewares: list[BaseMiddleware] = []

    @property
    def middlewares(self) -> list[BaseMiddleware]:
        return list(self._middlewares)

    def register(self, middleware: BaseMiddleware) -> "MiddlewareHandler":
        """Register a middleware. Returns self for chaining."""
        self._middlewares.append(middleware)
        logger.info(f"Registered middleware: {middleware.__class__.__name__}", icon=LogIcon.ADAPTER)
        return self

    async def run(self, context: RequestContext, handler: CallNext) -> Any:
        """Run the middlewares that apply to the context endpoint, then ``handler``."""
        chain = [middleware for middleware in self._middlewares if middleware.applies_to(context.endpoint)]

        async def call(index: int, ctx: RequestContext) -> Any:
            if index == len(chain):
                return await handler(ctx)
            return await chain[index].dispatch(ctx, lambda next_ctx: call(index + 1, next_ctx))

        return await call(0, context)
