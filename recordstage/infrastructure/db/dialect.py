"""
SQL dialect facets.

The staging core only needs a handful of dialect-specific fragments; each
target warehouse supplies them as plain strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, Type, Union

from ...core.enums import Dialect
from ...core.exceptions import ConfigurationError


class DBType(ABC):
    """Dialect-specific SQL fragments used by staging and merge."""

    dialect: Dialect
    supports_comments: bool = True
    supports_grants: bool = True

    @abstractmethod
    def current_timestamp(self) -> str:
        pass

    @abstractmethod
    def json_type(self) -> str:
        pass

    def encode_string_const(self, value: str) -> str:
        """Quote a value as a string literal."""
        return "'" + value.replace("'", "''") + "'"

    def text_cast(self, expression: str) -> str:
        return f"({expression})::VARCHAR"

    def table_keys(self, dist_key: str, sort_key: str) -> str:
        return ""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class PostgreSQLType(DBType):
    dialect = Dialect.POSTGRESQL

    def current_timestamp(self) -> str:
        return "CURRENT_TIMESTAMP"

    def json_type(self) -> str:
        return "JSON"

    def encode_string_const(self, value: str) -> str:
        # PostgreSQL text cannot hold NUL characters
        return super().encode_string_const(value.replace("\x00", ""))


class RedshiftType(DBType):
    dialect = Dialect.REDSHIFT

    def current_timestamp(self) -> str:
        return "GETDATE()"

    def json_type(self) -> str:
        return "VARCHAR(65535)"

    def encode_string_const(self, value: str) -> str:
        value = value.replace("\x00", "").replace("\\", "\\\\")
        return super().encode_string_const(value)

    def table_keys(self, dist_key: str, sort_key: str) -> str:
        return f" DISTKEY({dist_key}) COMPOUND SORTKEY({sort_key})"


class SQLiteType(DBType):
    dialect = Dialect.SQLITE
    supports_comments = False
    supports_grants = False

    def current_timestamp(self) -> str:
        return "strftime('%Y-%m-%d %H:%M:%f', 'now')"

    def json_type(self) -> str:
        return "TEXT"

    def text_cast(self, expression: str) -> str:
        return f"CAST({expression} AS TEXT)"


_DIALECTS: Dict[Dialect, Type[DBType]] = {
    Dialect.POSTGRESQL: PostgreSQLType,
    Dialect.REDSHIFT: RedshiftType,
    Dialect.SQLITE: SQLiteType,
}


def get_dialect(name: Union[str, Dialect]) -> DBType:
    try:
        return _DIALECTS[Dialect(name)]()
    except (KeyError, ValueError):
        raise ConfigurationError(f"Unsupported dialect: {name}", setting="dialect")
