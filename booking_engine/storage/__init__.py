from booking_engine.storage.base import ConstraintViolation, SchedulingStore, StoreError
from booking_engine.storage.memory import InMemoryStore

__all__ = [
    "ConstraintViolation",
    "InMemoryStore",
    "SchedulingStore",
    "StoreError",
]
