# ==============================================
# recordstage/processors/type_inference.py
# ==============================================
"""
Column type selection from analysis-pass statistics.

A type is chosen only when the evidence is uniform; anything mixed falls
back to varchar, which can hold every value.
"""

import re
from typing import Callable, List

from ..core.constants import ID_FIELD
from ..core.enums import ColumnType
from ..schemas.table_schema import ColumnSchema
from ..utils.logger import get_logger
from .statistics import Counts, StatisticsCollector

logger = get_logger(__name__)

ColumnTypeSelector = Callable[[Counts, str], ColumnType]

# Columns every loading table has regardless of inferred fields
RESERVED_COLUMNS = ("sk", "id", "data", "tenant_id")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def decode_camel_case(name: str) -> str:
    """
    Convert a camelCase field name to snake_case.

    >>> decode_camel_case("materialTypeId")
    'material_type_id'
    """
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def names_reference(field_name: str) -> bool:
    """Whether a field name signals a reference to another record."""
    if field_name == ID_FIELD:
        return False
    return field_name.endswith("Id") or field_name.lower().endswith("_id")


def select_column_type(counts: Counts, field_name: str = "") -> ColumnType:
    non_null = counts.non_null
    if non_null <= 0:
        return ColumnType.VARCHAR
    if counts.boolean == non_null:
        return ColumnType.BOOLEAN
    if counts.number == non_null:
        if counts.floating > 0:
            return ColumnType.NUMERIC
        return ColumnType.BIGINT
    if counts.string == non_null:
        if counts.uuid == non_null and names_reference(field_name):
            return ColumnType.ID
        if counts.date_time == non_null:
            return ColumnType.TIMESTAMPTZ
    return ColumnType.VARCHAR


def infer_columns(
    table_name: str,
    stats: StatisticsCollector,
    selector: ColumnTypeSelector = select_column_type,
) -> List[ColumnSchema]:
    """
    Build the column list of a loading table.

    The identifier field is excluded; it is stored in its own column.
    Decoded names that collide with the fixed columns or with each other
    get a trailing underscore.
    """
    columns = []
    taken = set(RESERVED_COLUMNS)
    for field_name, counts in stats.items():
        if field_name == ID_FIELD:
            continue
        column_type = selector(counts, field_name)
        column_name = decode_camel_case(field_name)
        while column_name in taken or (
            column_type == ColumnType.ID and f"{column_name}_sk" in taken
        ):
            column_name += "_"
        taken.add(column_name)
        if column_type == ColumnType.ID:
            taken.add(f"{column_name}_sk")
        column = ColumnSchema(
            column_name=column_name,
            source_column_name=field_name,
            column_type=column_type,
        )
        logger.debug(f"Column: {table_name}: {column.column_name} {column_type.value}")
        columns.append(column)
    return columns
