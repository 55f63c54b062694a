"""
Persistence package.

  base.py    DocumentStore / CatalogStore interfaces, NotFoundError, ConflictError
  sql.py     SQLAlchemy implementations (the only ones the app wires)
  memory.py  dict-backed fakes used by the test suite
"""

from docuai.store.base import (
    CatalogStore,
    ConflictError,
    DocumentStore,
    NotFoundError,
    UserStats,
)

__all__ = [
    "CatalogStore",
    "ConflictError",
    "DocumentStore",
    "NotFoundError",
    "UserStats",
]
