"""Embedded DuckDB storage shared by the users, rooms and messages modules."""

from .database import Database, utc_now_naive

__all__ = ["Database", "utc_now_naive"]
