"""Database infrastructure for the HR kernel."""

from hr_kernel.db.base import Base, TimestampedBase, UUIDString

__all__ = [
    "Base",
    "TimestampedBase",
    "UUIDString",
]
