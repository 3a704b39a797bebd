"""Unit name to unit group index."""

from .index import UnitIndex

__all__ = ["UnitIndex"]
