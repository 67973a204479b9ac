from __future__ import annotations

from contextvars import ContextVar

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
_requester_id_ctx: ContextVar[int | None] = ContextVar("requester_id", default=None)


def get_request_id() -> str | None:
    return _request_id_ctx.get()


def set_request_id(value: str | None) -> None:
    _request_id_ctx.set(value)


def get_requester_id() -> int | None:
    return _requester_id_ctx.get()


def set_requester_id(value: int | None) -> None:
    _requester_id_ctx.set(value)
