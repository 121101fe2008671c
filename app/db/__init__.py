"""Database package"""
from app.db.session import Database, get_db, get_database
from app.models.base import Base

__all__ = ["Database", "get_db", "get_database", "Base"]
