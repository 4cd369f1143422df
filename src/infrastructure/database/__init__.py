"""Database Infrastructure Module.

PostgreSQL storage for resources, their values and custom vocabularies
(async SQLAlchemy over asyncpg).
"""

from .config import DatabaseConfig
from .session import close_database, create_schema, init_database
from .models import (
    Base,
    CustomVocabRecord,
    ItemSetMembership,
    ResourceRecord,
    ValueRecord,
)
from .sql_store import SqlResourceStore, SqlVocabularyStore, build_conflict_query

__all__ = [
    "DatabaseConfig",
    "init_database",
    "close_database",
    "create_schema",
    "Base",
    "CustomVocabRecord",
    "ItemSetMembership",
    "ResourceRecord",
    "ValueRecord",
    "SqlResourceStore",
    "SqlVocabularyStore",
    "build_conflict_query",
]
