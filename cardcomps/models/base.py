"""
Declarative base for the Card Comps snapshot store.
"""

from __future__ import annotations

from collections.abc import Container
from typing import Any

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    def to_dict(self, exclude: Container[str] = ()) -> dict[str, Any]:
        """Column values keyed by column name."""
        return {
            c.name: getattr(self, c.name)
            for c in self.__table__.columns
            if c.name not in exclude
        }
