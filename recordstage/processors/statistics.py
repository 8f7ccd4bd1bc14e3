# ==============================================
# recordstage/processors/statistics.py
# ==============================================
import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterator, Tuple

from ..utils.logger import get_logger

logger = get_logger(__name__)

DATE_TIME_PATTERN = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}((\.\d{3}\+\d{4})|(Z))"
)

UUID_PATTERN = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)


def looks_like_date_time(value: str) -> bool:
    return DATE_TIME_PATTERN.fullmatch(value) is not None


def is_uuid(value: str) -> bool:
    return UUID_PATTERN.fullmatch(value) is not None


@dataclass
class Counts:
    """Occurrences of each scalar kind seen for one top-level field."""

    total: int = 0
    null: int = 0
    boolean: int = 0
    number: int = 0
    integer: int = 0
    floating: int = 0
    string: int = 0
    uuid: int = 0
    date_time: int = 0

    @property
    def non_null(self) -> int:
        return self.total - self.null

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class StatisticsCollector:
    """
    Accumulates Counts per top-level field across all records of a table.

    Only direct scalar children of a record are counted; objects and
    arrays contribute nothing.
    """

    def __init__(self):
        self._stats: Dict[str, Counts] = {}
        self.records_seen = 0

    def add_record(self, record: Dict[str, Any]) -> None:
        self.records_seen += 1
        for field_name, value in record.items():
            if isinstance(value, (dict, list)):
                continue
            self.add_value(field_name, value)

    def add_value(self, field_name: str, value: Any) -> None:
        counts = self._stats.get(field_name)
        if counts is None:
            counts = self._stats[field_name] = Counts()

        counts.total += 1
        if value is None:
            counts.null += 1
        elif isinstance(value, bool):
            counts.boolean += 1
        elif isinstance(value, int):
            counts.number += 1
            counts.integer += 1
        elif isinstance(value, float):
            counts.number += 1
            counts.floating += 1
        elif isinstance(value, str):
            counts.string += 1
            if is_uuid(value):
                counts.uuid += 1
            if looks_like_date_time(value):
                counts.date_time += 1

    def items(self) -> Iterator[Tuple[str, Counts]]:
        """Fields in sorted order with their counts."""
        for field_name in sorted(self._stats):
            yield field_name, self._stats[field_name]

    def __getitem__(self, field_name: str) -> Counts:
        return self._stats[field_name]

    def __contains__(self, field_name: str) -> bool:
        return field_name in self._stats

    def __len__(self) -> int:
        return len(self._stats)

    def log_summary(self, table_name: str) -> None:
        for field_name, counts in self.items():
            logger.debug(f"Stats: {table_name}: field {field_name}: {counts.to_dict()}")
