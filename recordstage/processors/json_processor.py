# ==============================================
# recordstage/processors/json_processor.py
# ==============================================
from typing import Any, BinaryIO, Dict, Optional

from ..core.enums import RunMode
from ..core.exceptions import StagingError
from ..schemas.table_schema import TableSchema
from ..utils.logger import get_logger
from .anonymizer import PathPredicate, redact
from .record_builder import RecordBuilder
from .statistics import StatisticsCollector
from .tuple_encoder import TupleEncoder

logger = get_logger(__name__)


class JSONPageProcessor:
    """
    Runs the record builder over page files for one pass of one table.

    In ANALYZE mode every record feeds the statistics collector. In LOAD
    mode records are redacted (when the table has anonymization rules)
    and handed to the tuple encoder.
    """

    def __init__(
        self,
        table: TableSchema,
        mode: RunMode,
        collector: Optional[StatisticsCollector] = None,
        encoder: Optional[TupleEncoder] = None,
        predicate: Optional[PathPredicate] = None,
    ):
        if mode == RunMode.ANALYZE and collector is None:
            raise StagingError("Analysis pass requires a statistics collector", table=table.table_name)
        if mode == RunMode.LOAD and encoder is None:
            raise StagingError("Load pass requires a tuple encoder", table=table.table_name)

        self.table = table
        self.mode = mode
        self.collector = collector
        self.encoder = encoder
        self.predicate = predicate if mode == RunMode.LOAD else None
        self.records_processed = 0

    def handle_record(self, record: Dict[str, Any]) -> None:
        if self.mode == RunMode.ANALYZE:
            self.collector.add_record(record)
        else:
            if self.predicate is not None:
                record = redact(record, self.predicate)
            self.encoder.write(record)
        self.records_processed += 1

    def process_page(self, stream: BinaryIO) -> int:
        """
        Process one page stream.

        Args:
            stream: Binary stream positioned at the start of the page

        Returns:
            Number of records in the page
        """
        builder = RecordBuilder(self.table.table_name, self.handle_record)
        return builder.build(stream)
