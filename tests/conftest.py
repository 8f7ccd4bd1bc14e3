"""Pytest configuration and shared fixtures."""

import json
from pathlib import Path
from typing import Any, Callable, List

import pytest

from recordstage.core.config import Settings
from recordstage.infrastructure.db.connection import DatabaseManager
from recordstage.infrastructure.db.dialect import SQLiteType
from recordstage.services.idmap_service import IDMap, MemoryKeyStore

PageWriter = Callable[[Path, str, List[Any]], Path]


@pytest.fixture
def settings() -> Settings:
    """Create settings for an in-memory SQLite warehouse.

    Returns:
        Settings: Run configuration without anonymization rules
    """
    return Settings(
        database_url="sqlite://",
        dialect="sqlite",
        anonymize={},
        tenant_id=1,
        max_workers=1,
    )


@pytest.fixture
def db(settings: Settings):
    """Create a database manager with system tables in place."""
    manager = DatabaseManager(settings)
    manager.init_db()
    yield manager
    manager.dispose()


@pytest.fixture
def dbt() -> SQLiteType:
    return SQLiteType()


@pytest.fixture
def idmap() -> IDMap:
    return IDMap(MemoryKeyStore())


@pytest.fixture
def write_pages() -> PageWriter:
    """Write a table's page count marker and page files into a directory.

    Each page is either a list of records (written as a root array), a
    dict (written as an envelope object) or raw bytes.
    """

    def _write(directory: Path, table_name: str, pages: List[Any]) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        (directory / f"{table_name}_count.txt").write_text(f"{len(pages)}\n", encoding="utf-8")
        for number, page in enumerate(pages):
            path = directory / f"{table_name}_{number}.json"
            if isinstance(page, bytes):
                path.write_bytes(page)
            else:
                path.write_text(json.dumps(page, indent=2), encoding="utf-8")
        return directory

    return _write


def fetch_all(db: DatabaseManager, sql: str) -> List[tuple]:
    with db.transaction() as conn:
        return [tuple(row) for row in conn.query(sql)]

