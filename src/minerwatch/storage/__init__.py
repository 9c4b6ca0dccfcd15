from __future__ import annotations

from .database import Database

__all__ = ["Database"]
