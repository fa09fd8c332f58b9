"""SQLSTATE inspection for driver and SQLAlchemy errors.

asyncpg exposes the code as ``sqlstate``; SQLAlchemy wraps driver errors
in ``DBAPIError`` with the adapted driver error on ``orig``, which carries
``pgcode``/``sqlstate`` and chains the raw asyncpg error as ``__cause__``.
"""

from __future__ import annotations

ADMIN_SHUTDOWN = "57P01"

_CODE_ATTRIBUTES = ("sqlstate", "pgcode")


def extract_sqlstate(error: BaseException) -> str | None:
    """Return the Postgres SQLSTATE carried by an error, if any."""
    seen: set[int] = set()
    pending: list[BaseException | None] = [error]

    while pending:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))

        for attribute in _CODE_ATTRIBUTES:
            code = getattr(current, attribute, None)
            if isinstance(code, str) and code:
                return code

        orig = getattr(current, "orig", None)
        if isinstance(orig, BaseException):
            pending.append(orig)
        pending.append(current.__cause__)

    return None


def is_admin_shutdown(error: BaseException) -> bool:
    """True when the server terminated the connection (SQLSTATE 57P01)."""
    return extract_sqlstate(error) == ADMIN_SHUTDOWN
