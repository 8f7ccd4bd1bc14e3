# ==============================================
# recordstage/processors/record_builder.py
# ==============================================
"""
Streaming reconstruction of records from a token-level JSON reader.

A page is either an array of record objects, or an object whose direct
array members hold the records (the envelope the source platform writes,
e.g. {"users": [...], "totalRecords": 2}). Non-object values in
an envelope array are ignored. Only one record's text is held in memory
at a time.

States:
    OUTSIDE_ARRAY   -> BETWEEN_RECORDS  on entering a record array
    BETWEEN_RECORDS -> INSIDE_RECORD    on an object start
    INSIDE_RECORD   -> BETWEEN_RECORDS  when the record object closes
    BETWEEN_RECORDS -> OUTSIDE_ARRAY    on leaving the record array
"""

import json
import math
from decimal import Decimal
from typing import Any, BinaryIO, Callable, Dict, List, Optional

import ijson

from ..core.enums import BuilderState
from ..core.exceptions import MalformedRecordError, StagingError
from ..utils.logger import get_logger
from .canonicalizer import canonicalize

logger = get_logger(__name__)

RecordHandler = Callable[[Dict[str, Any]], None]

SCALAR_EVENTS = ("null", "boolean", "integer", "double", "number", "string")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"Number out of range: {text}")
    return value


def _scalar_text(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, Decimal)):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    return json.dumps(value, ensure_ascii=False)


class RecordBuilder:
    """
    Event-driven record reconstruction.

    Each completed record is parsed once, canonicalized and passed to
    the handler.
    """

    def __init__(self, table_name: str, handler: RecordHandler):
        self.table_name = table_name
        self.handler = handler
        self.state = BuilderState.OUTSIDE_ARRAY
        self.records_built = 0

        # Containers opened outside any record (root object, record array)
        self._outer: List[str] = []
        # Containers opened inside the current record, with "first member" flags
        self._inner: List[str] = []
        self._first: List[bool] = []
        self._after_key = False
        self._parts: List[str] = []
        # Depth of a non-record container being skipped inside an envelope array
        self._skip_depth = 0

    @property
    def record_depth(self) -> int:
        return len(self._inner)

    def build(self, stream: BinaryIO) -> int:
        """
        Consume one page.

        Args:
            stream: Binary stream with one JSON page

        Returns:
            Number of records reconstructed from the page
        """
        start = self.records_built
        try:
            for _prefix, event, value in ijson.parse(stream):
                self.feed(event, value)
        except ijson.JSONError as e:
            raise StagingError(f"Invalid JSON in page: {e}", table=self.table_name)
        if self.state != BuilderState.OUTSIDE_ARRAY:
            raise MalformedRecordError(
                f"Page ended in state {self.state.value}", table=self.table_name
            )
        return self.records_built - start

    def feed(self, event: str, value: Any = None) -> None:
        if self.state == BuilderState.INSIDE_RECORD:
            self._feed_inside_record(event, value)
        elif self.state == BuilderState.BETWEEN_RECORDS:
            self._feed_between_records(event)
        else:
            self._feed_outside_array(event)

    def _illegal(self, event: str) -> MalformedRecordError:
        return MalformedRecordError(
            f"Unexpected '{event}' in state {self.state.value}",
            table=self.table_name,
        )

    def _feed_outside_array(self, event: str) -> None:
        if event == "start_array":
            # Root array, or an array member of the root object
            if not self._outer or self._outer == ["{"]:
                self.state = BuilderState.BETWEEN_RECORDS
            self._outer.append("[")
        elif event == "start_map":
            self._outer.append("{")
        elif event in ("end_map", "end_array"):
            if not self._outer:
                raise self._illegal(event)
            self._outer.pop()
        elif event == "map_key" or event in SCALAR_EVENTS:
            pass
        else:
            raise self._illegal(event)

    def _feed_between_records(self, event: str) -> None:
        if self._skip_depth:
            if event in ("start_map", "start_array"):
                self._skip_depth += 1
            elif event in ("end_map", "end_array"):
                self._skip_depth -= 1
            return

        if event == "start_map":
            self.state = BuilderState.INSIDE_RECORD
            self._parts = ["{"]
            self._inner = ["{"]
            self._first = [True]
            self._after_key = False
        elif event == "end_array":
            self._outer.pop()
            self.state = BuilderState.OUTSIDE_ARRAY
        elif self._outer == ["{", "["]:
            # Envelope arrays may also hold non-record values
            if event == "start_array":
                self._skip_depth = 1
            elif event not in SCALAR_EVENTS:
                raise self._illegal(event)
        else:
            # Records are objects; anything else in the root array is not
            raise self._illegal(event)

    def _separator(self) -> None:
        if self._after_key:
            self._after_key = False
            return
        if not self._first[-1]:
            self._parts.append(",")
        self._first[-1] = False

    def _feed_inside_record(self, event: str, value: Any) -> None:
        if event == "map_key":
            if self._inner[-1] != "{" or self._after_key:
                raise self._illegal(event)
            if not self._first[-1]:
                self._parts.append(",")
            self._first[-1] = False
            self._parts.append(json.dumps(value, ensure_ascii=False))
            self._parts.append(":")
            self._after_key = True
        elif event in SCALAR_EVENTS:
            self._separator()
            self._parts.append(_scalar_text(value))
        elif event in ("start_map", "start_array"):
            self._separator()
            bracket = "{" if event == "start_map" else "["
            self._parts.append(bracket)
            self._inner.append(bracket)
            self._first.append(True)
        elif event in ("end_map", "end_array"):
            expected = "{" if event == "end_map" else "["
            if self._inner[-1] != expected or self._after_key:
                raise self._illegal(event)
            self._parts.append("}" if expected == "{" else "]")
            self._inner.pop()
            self._first.pop()
            if not self._inner:
                self._finish_record()
        else:
            raise self._illegal(event)

    def _finish_record(self) -> None:
        text = "".join(self._parts)
        self._parts = []
        self.state = BuilderState.BETWEEN_RECORDS
        try:
            tree = json.loads(text, parse_float=_finite_float)
        except ValueError as e:
            raise MalformedRecordError(
                f"Reconstructed record is not valid JSON: {e}",
                table=self.table_name,
                record_text=text,
            )
        self.records_built += 1
        self.handler(canonicalize(tree))


def build_records(table_name: str, stream: BinaryIO, handler: RecordHandler) -> int:
    """Reconstruct every record of one page and pass each to handler."""
    builder = RecordBuilder(table_name, handler)
    return builder.build(stream)
