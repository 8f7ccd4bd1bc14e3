"""
Table and column schema definitions.

A TableSchema names one logical table of the source platform. Its column
list starts empty and is filled once by type inference during the analysis
pass; after that it is treated as read-only.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core.enums import ColumnType
from ..core.exceptions import ConfigurationError


@dataclass(frozen=True)
class ColumnSchema:
    """Inferred column of a loading table."""

    column_name: str
    source_column_name: str
    column_type: ColumnType

    @property
    def has_companion_key(self) -> bool:
        return self.column_type == ColumnType.ID

    @property
    def companion_key_name(self) -> str:
        return f"{self.column_name}_sk"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column_name": self.column_name,
            "source_column_name": self.source_column_name,
            "column_type": self.column_type.value,
        }


@dataclass
class TableSchema:
    """Logical table staged from one family of page files."""

    table_name: str
    module_name: Optional[str] = None
    source_path: Optional[str] = None
    skip: bool = False
    columns: List[ColumnSchema] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table_name": self.table_name,
            "module_name": self.module_name,
            "source_path": self.source_path,
            "skip": self.skip,
            "columns": [c.to_dict() for c in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableSchema":
        if "table_name" not in data:
            raise ConfigurationError("Table definition without table_name", details={"table": data})
        return cls(
            table_name=data["table_name"],
            module_name=data.get("module_name"),
            source_path=data.get("source_path"),
            skip=bool(data.get("skip", False)),
        )


def load_table_schemas(source: Union[str, Path, List[Any]]) -> List[TableSchema]:
    """
    Build table definitions from a JSON schema file or a list.

    Entries may be plain table names or objects with table_name,
    module_name, source_path and skip.
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        try:
            with open(path, "r", encoding="utf-8") as f:
                entries = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read table schema file {path}: {e}", setting="schema_file")
        if isinstance(entries, dict):
            entries = entries.get("tables", [])
    else:
        entries = source

    tables = []
    for entry in entries:
        if isinstance(entry, str):
            tables.append(TableSchema(table_name=entry))
        elif isinstance(entry, dict):
            tables.append(TableSchema.from_dict(entry))
        else:
            raise ConfigurationError(f"Invalid table definition: {entry!r}")
    return tables
