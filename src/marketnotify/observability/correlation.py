"""Correlation ID propagation for HTTP requests and bus events.

HTTP requests take the id from X-Correlation-ID; bus events from the
envelope's correlationId, falling back to its eventId.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    correlation_id_var.reset(token)


@contextmanager
def correlation_scope(*candidates: str | None) -> Iterator[str]:
    """Bind the first non-empty candidate (or a fresh id) for the block.

    Worker threads start with an empty context, so the id is bound per unit
    of work rather than inherited.
    """
    cid = next((c for c in candidates if c), None) or generate_correlation_id()
    token = set_correlation_id(cid)
    try:
        yield cid
    finally:
        reset_correlation_id(token)
