"""Infrastructure models package exports."""
from .base import Base, metadata
from .reservation import ReservationModel

__all__ = [
    "Base",
    "metadata",
    "ReservationModel",
]
