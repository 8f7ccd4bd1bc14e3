# ==============================================
# recordstage/processors/tuple_encoder.py
# ==============================================
"""
Encoding of records as SQL tuples and batching into INSERT statements.

Tuple layout matches the loading table:
    (sk, id, [<column>_sk,] <column>, ..., data, tenant_id)
"""

import json
from typing import Any, Callable, Dict, List, Optional, Set

from ..core.constants import ID_FIELD, INSERT_FLUSH_THRESHOLD, MAX_VALUE_LENGTH
from ..core.enums import ColumnType
from ..core.exceptions import MalformedRecordError
from ..infrastructure.db.dialect import DBType
from ..infrastructure.db.names import loading_table_name
from ..schemas.table_schema import ColumnSchema, TableSchema
from ..services.idmap_service import IDMap
from ..utils.logger import get_logger
from .canonicalizer import canonical_text

logger = get_logger(__name__)

NULL = "NULL"


class InsertBuffer:
    """
    Accumulates tuples into one multi-row INSERT statement.

    The statement is executed as soon as its size passes the flush
    threshold, so it never exceeds the threshold by more than one tuple.
    """

    def __init__(
        self,
        table_name: str,
        execute: Callable[[str], None],
        flush_threshold: int = INSERT_FLUSH_THRESHOLD,
    ):
        self.table_name = table_name
        self.execute = execute
        self.flush_threshold = flush_threshold
        self.prefix = f"INSERT INTO {loading_table_name(table_name)} VALUES "

        self._tuples: List[str] = []
        self._pending_ids: Set[str] = set()
        self._size = len(self.prefix)

        self.statements_flushed = 0
        self.tuples_flushed = 0

    @property
    def size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return len(self._tuples)

    def holds(self, natural_id: str) -> bool:
        return natural_id in self._pending_ids

    def add(self, tuple_text: str, natural_id: Optional[str] = None) -> None:
        if self._tuples:
            self._size += 1
        self._tuples.append(tuple_text)
        self._size += len(tuple_text)
        if natural_id is not None:
            self._pending_ids.add(natural_id)
        if self._size > self.flush_threshold:
            self.flush()

    def flush(self) -> bool:
        """Execute pending tuples as one statement; False when empty."""
        if not self._tuples:
            return False
        count = len(self._tuples)
        sql = self.prefix + ",".join(self._tuples) + ";"
        logger.debug(f"Loading data for table: {self.table_name}: {count} records")
        self.execute(sql)
        self.statements_flushed += 1
        self.tuples_flushed += count
        self._tuples = []
        self._pending_ids = set()
        self._size = len(self.prefix)
        return True


class SeenKeys:
    """
    Surrogate keys already written in this pass, one bit per key.

    Keys are dense within a table's namespace, so the bitmap stays
    proportional to the highest key rather than to the ids themselves.
    """

    def __init__(self):
        self._bits = bytearray()

    @property
    def nbytes(self) -> int:
        return len(self._bits)

    def add(self, sk: int) -> bool:
        """Mark sk; returns True when it was already marked."""
        index, mask = sk >> 3, 1 << (sk & 7)
        if index >= len(self._bits):
            self._bits.extend(bytes(index + 1 - len(self._bits)))
        seen = bool(self._bits[index] & mask)
        self._bits[index] |= mask
        return seen


class TupleEncoder:
    """
    Encodes canonical records for one loading table.

    Values longer than the column limit are stored as NULL with a warning.
    When a natural id appears a second time in the same snapshot, the
    earlier row is removed and the later record is kept.
    """

    def __init__(
        self,
        table: TableSchema,
        dbt: DBType,
        idmap: IDMap,
        buffer: InsertBuffer,
        tenant_id: int = 1,
        max_value_length: int = MAX_VALUE_LENGTH,
    ):
        self.table = table
        self.dbt = dbt
        self.idmap = idmap
        self.buffer = buffer
        self.tenant_id = tenant_id
        self.max_value_length = max_value_length

        self.records_written = 0
        self.duplicates_replaced = 0
        self.warning_count = 0
        self._seen_keys = SeenKeys()

    def write(self, record: Dict[str, Any]) -> None:
        natural_id = self._natural_id(record)
        sk = self.idmap.resolve(self.table.table_name, natural_id)

        if self._seen_keys.add(sk):
            self._replace_earlier(natural_id, sk)

        self.buffer.add(self.encode(record, natural_id, sk), natural_id)
        self.records_written += 1

    def finish(self) -> None:
        self.buffer.flush()

    def _replace_earlier(self, natural_id: str, sk: int) -> None:
        if self.buffer.holds(natural_id):
            self.buffer.flush()
        self.buffer.execute(
            f"DELETE FROM {loading_table_name(self.table.table_name)} WHERE sk = {sk};"
        )
        self.duplicates_replaced += 1
        logger.debug(f"Record replaced by later occurrence: {self.table.table_name}: id {natural_id}")

    def _natural_id(self, record: Dict[str, Any]) -> str:
        value = record.get(ID_FIELD)
        if value is None:
            raise MalformedRecordError(
                "Record has no id",
                table=self.table.table_name,
                record_text=canonical_text(record, pretty=False, ordered=True),
            )
        if isinstance(value, str):
            return value
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)

    def encode(self, record: Dict[str, Any], natural_id: str, sk: int) -> str:
        """Build the tuple text for one record."""
        parts = [str(sk), self.dbt.encode_string_const(natural_id)]
        for column in self.table.columns:
            parts.extend(self._column_literals(column, record.get(column.source_column_name), natural_id, sk))
        parts.append(self._data_literal(record, natural_id, sk))
        parts.append(str(self.tenant_id))
        return "(" + ",".join(parts) + ")"

    def _column_literals(self, column: ColumnSchema, value: Any, natural_id: str, sk: int) -> List[str]:
        column_type = column.column_type

        if column_type == ColumnType.ID:
            if not isinstance(value, str):
                return [NULL, NULL]
            ref_sk = self.idmap.resolve_reference(value)
            return [str(ref_sk), self._string_literal(value, column, natural_id, sk)]

        if value is None:
            return [NULL]

        if column_type == ColumnType.BIGINT:
            if isinstance(value, int) and not isinstance(value, bool):
                return [str(value)]
        elif column_type == ColumnType.BOOLEAN:
            if isinstance(value, bool):
                return ["TRUE" if value else "FALSE"]
        elif column_type == ColumnType.NUMERIC:
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return [repr(value) if isinstance(value, float) else str(value)]
        elif column_type == ColumnType.TIMESTAMPTZ:
            if isinstance(value, str):
                return [self._string_literal(value, column, natural_id, sk)]
        else:
            if not isinstance(value, str):
                value = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
            return [self._string_literal(value, column, natural_id, sk)]

        logger.debug(
            f"Value does not match column type: {self.table.table_name}.{column.column_name} "
            f"({column_type.value}): id {natural_id}"
        )
        return [NULL]

    def _string_literal(self, value: str, column: ColumnSchema, natural_id: str, sk: int) -> str:
        if len(value) > self.max_value_length:
            self._warn(
                "String length exceeds database limit",
                natural_id, sk, column=column.column_name,
                action="Value stored as NULL",
            )
            return NULL
        return self.dbt.encode_string_const(value)

    def _data_literal(self, record: Dict[str, Any], natural_id: str, sk: int) -> str:
        data = canonical_text(record, pretty=True, ordered=True)
        if len(data) > self.max_value_length:
            # Pretty-printed form is too large; try compact form
            data = canonical_text(record, pretty=False, ordered=True)
            if len(data) > self.max_value_length:
                self._warn(
                    "JSON object size exceeds database limit",
                    natural_id, sk, column="data",
                    action='Value of column "data" stored as NULL',
                )
                return NULL
        return self.dbt.encode_string_const(data)

    def _warn(self, message: str, natural_id: str, sk: int, column: str, action: str) -> None:
        self.warning_count += 1
        logger.warning(
            f"{message}: table {self.table.table_name}, column {column}, sk {sk}, id {natural_id}: {action}",
            extra={
                "extra_fields": {
                    "table": self.table.table_name,
                    "column": column,
                    "sk": sk,
                    "id": natural_id,
                    "action": action,
                }
            },
        )
