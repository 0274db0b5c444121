"""Identifier and clock helpers shared by the schema modules."""

import uuid
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Default clock. Components accept a ``clock`` so tests can freeze time."""
    return datetime.now(timezone.utc)
