"""Database package for the lead marketplace."""
from db.connection import Database

__all__ = ["Database"]
