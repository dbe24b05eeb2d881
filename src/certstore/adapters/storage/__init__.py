"""Concrete `Storage` backends."""

from .local import LocalStorage
from .memory import MemoryStorage
from .sqlalchemy_storage import SqlAlchemyStorage

__all__ = ["LocalStorage", "MemoryStorage", "SqlAlchemyStorage"]
