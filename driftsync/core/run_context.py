from __future__ import annotations

import uuid
from contextvars import ContextVar, Token

_run_id_ctx: ContextVar[str] = ContextVar("run_id", default="-")


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def set_run_id(run_id: str) -> Token[str]:
    return _run_id_ctx.set(run_id)


def get_run_id() -> str:
    return _run_id_ctx.get()


def reset_run_id(token: Token[str]) -> None:
    _run_id_ctx.reset(token)
