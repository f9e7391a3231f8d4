"""
Current acting identity for platform writes.

The platform stamps documents it writes with the "current user". That value is
request-scoped (a ContextVar, so each request task sees its own copy) and is
only ever swapped through `acting_as`, which restores the previous identity on
every exit path.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

_current_user_id: ContextVar[int] = ContextVar("current_user_id", default=0)


def current_user_id() -> int:
    return _current_user_id.get()


def set_current_user(user_id: int) -> None:
    _current_user_id.set(int(user_id or 0))


@contextmanager
def acting_as(user_id: int | None) -> Iterator[int]:
    """
    Temporarily act as `user_id`. A falsy id keeps the current identity.
    """
    if not user_id or int(user_id) == _current_user_id.get():
        yield _current_user_id.get()
        return

    token = _current_user_id.set(int(user_id))
    try:
        yield int(user_id)
    finally:
        _current_user_id.reset(token)
