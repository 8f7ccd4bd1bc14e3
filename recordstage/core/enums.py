from enum import Enum


class ColumnType(str, Enum):
    """Relational column types produced by type inference"""
    BIGINT = "bigint"
    BOOLEAN = "boolean"
    NUMERIC = "numeric"
    TIMESTAMPTZ = "timestamptz"
    VARCHAR = "varchar"
    ID = "id"

    @property
    def sql_type(self) -> str:
        return {
            ColumnType.BIGINT: "BIGINT",
            ColumnType.BOOLEAN: "BOOLEAN",
            ColumnType.NUMERIC: "NUMERIC",
            ColumnType.TIMESTAMPTZ: "TIMESTAMPTZ",
            ColumnType.VARCHAR: "VARCHAR(65535)",
            ColumnType.ID: "VARCHAR(36)",
        }[self]


class RunMode(str, Enum):
    """Pass over the page files"""
    ANALYZE = "ANALYZE"
    LOAD = "LOAD"


class BuilderState(str, Enum):
    """Position of the record builder within a page"""
    OUTSIDE_ARRAY = "OUTSIDE_ARRAY"
    BETWEEN_RECORDS = "BETWEEN_RECORDS"
    INSIDE_RECORD = "INSIDE_RECORD"


class Dialect(str, Enum):
    POSTGRESQL = "postgresql"
    REDSHIFT = "redshift"
    SQLITE = "sqlite"


class TableStatus(str, Enum):
    """Outcome of one table's unit of work"""
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
