"""Postgres transaction-scoped advisory locks.

Uses ``pg_advisory_xact_lock`` so that two requests racing on the same logical key
(e.g. inviting one email to one workspace) run their look-then-act sequence one after
the other. The lock is released when the surrounding transaction commits or rolls
back. Lock keys should be integers; we compute a 64-bit key by hashing a string.
"""
from __future__ import annotations

import hashlib
from sqlalchemy import text
from sqlalchemy.orm import Session


def _lock_key(name: str) -> int:
    # produce a stable 64-bit signed integer from the lock name
    h = hashlib.sha256(name.encode("utf-8")).digest()
    val = int.from_bytes(h[:8], byteorder="big", signed=False)
    # Postgres advisory lock takes bigint (signed), so fit into signed 64-bit
    if val > (2 ** 63 - 1):
        val = val - 2 ** 64
    return val


def advisory_xact_lock(session: Session, name: str) -> bool:
    """Block until the advisory lock for ``name`` is held by the current transaction.

    Returns False without doing anything on dialects other than PostgreSQL; there the
    store's own unique indexes are the only guard.
    """
    bind = session.get_bind()
    if bind.dialect.name != "postgresql":
        return False
    session.execute(text("SELECT pg_advisory_xact_lock(:k)"), {"k": _lock_key(name)})
    return True
