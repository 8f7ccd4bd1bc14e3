"""
Two-pass staging of one table.

Pass 1 (analyze) reads every page and collects per-field statistics, from
which the loading table's columns are inferred. Pass 2 (load) reads the
pages again and bulk-inserts one row per record into the freshly created
loading table. The loading table is created and filled in one transaction,
so a failed load leaves nothing behind.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from ..core.config import Settings, get_settings
from ..core.constants import MAX_VALUE_LENGTH
from ..core.enums import ColumnType, RunMode
from ..core.logging import LoggerAdapter
from ..infrastructure.db.connection import DatabaseManager, SqlConnection
from ..infrastructure.db.dialect import DBType
from ..infrastructure.db.names import loading_table_name
from ..infrastructure.storage.page_source import PageSource
from ..processors.anonymizer import AnonymizationPolicy
from ..processors.json_processor import JSONPageProcessor
from ..processors.statistics import StatisticsCollector
from ..processors.tuple_encoder import InsertBuffer, TupleEncoder
from ..processors.type_inference import infer_columns
from ..schemas.table_schema import ColumnSchema, TableSchema
from ..utils.logger import get_logger
from .idmap_service import IDMap

logger = get_logger(__name__)


@dataclass
class StageResult:
    table_name: str
    page_count: int = 0
    records_analyzed: int = 0
    records_loaded: int = 0
    duplicates_replaced: int = 0
    statements_executed: int = 0
    warnings: int = 0
    columns: List[ColumnSchema] = field(default_factory=list)


class StagingService:

    def __init__(
        self,
        db: DatabaseManager,
        dbt: DBType,
        page_source: PageSource,
        idmap: IDMap,
        settings: Optional[Settings] = None,
        anonymization: Optional[AnonymizationPolicy] = None,
    ):
        self.db = db
        self.dbt = dbt
        self.page_source = page_source
        self.idmap = idmap
        self.settings = settings or get_settings()
        self.anonymization = anonymization or AnonymizationPolicy(self.settings.anonymize)

    def stage_table(self, table: TableSchema) -> StageResult:
        """
        Analyze and load one table into its loading table.

        Raises:
            MalformedRecordError: Reconstructed record text is invalid
            PageCountError: Page count marker is unreadable
            DatabaseError: A statement failed
        """
        log = LoggerAdapter(logger, {"table": table.table_name})
        result = StageResult(table_name=table.table_name)

        result.page_count = self.page_source.page_count(table.table_name)
        log.info(f"Staging: {table.table_name}: page count: {result.page_count}")

        collector = self.analyze_table(table, result.page_count)
        result.records_analyzed = collector.records_seen
        result.columns = list(table.columns)

        with self.idmap.transaction(self.db) as conn:
            self.create_loading_table(conn, table)

            buffer = InsertBuffer(
                table.table_name,
                conn.exec,
                flush_threshold=self.settings.insert_flush_threshold,
            )
            encoder = TupleEncoder(
                table,
                self.dbt,
                self.idmap,
                buffer,
                tenant_id=self.settings.tenant_id,
                max_value_length=self.settings.max_value_length,
            )
            processor = JSONPageProcessor(
                table,
                RunMode.LOAD,
                encoder=encoder,
                predicate=self.anonymization.predicate_for(table.table_name),
            )
            log.info(f"Staging: {table.table_name}: load")
            self._run_pass(processor, result.page_count)
            encoder.finish()

        result.records_loaded = encoder.records_written
        result.duplicates_replaced = encoder.duplicates_replaced
        result.statements_executed = buffer.statements_flushed
        result.warnings = encoder.warning_count
        log.info(
            f"Staging: {table.table_name}: {result.records_loaded} records loaded "
            f"in {result.statements_executed} statements"
        )
        return result

    def analyze_table(self, table: TableSchema, page_count: Optional[int] = None) -> StatisticsCollector:
        """Run the analysis pass and set the table's inferred columns."""
        if page_count is None:
            page_count = self.page_source.page_count(table.table_name)

        logger.info(f"Staging: {table.table_name}: analyze")
        collector = StatisticsCollector()
        processor = JSONPageProcessor(table, RunMode.ANALYZE, collector=collector)
        self._run_pass(processor, page_count)

        collector.log_summary(table.table_name)
        table.columns = infer_columns(table.table_name, collector)
        return collector

    def _run_pass(self, processor: JSONPageProcessor, page_count: int) -> None:
        table_name = processor.table.table_name
        mode = processor.mode.value.lower()
        for page in range(page_count):
            stream = self.page_source.open_page(table_name, page)
            if stream is None:
                logger.warning(f"Staging: {table_name}: {mode}: page {page} not found")
                break
            with stream:
                records = processor.process_page(stream)
            logger.debug(f"Staging: {table_name}: {mode}: page: {page}: {records} records")

        for stream in self.page_source.extra_pages(table_name):
            records = processor.process_page(stream)
            logger.debug(f"Staging: {table_name}: {mode}: test file: {records} records")

    def create_loading_table(self, conn: SqlConnection, table: TableSchema) -> None:
        loading_table = loading_table_name(table.table_name)
        conn.exec(f"DROP TABLE IF EXISTS {loading_table};")

        lines = [
            "    sk BIGINT NOT NULL,",
            f"    id VARCHAR({MAX_VALUE_LENGTH}) NOT NULL,",
        ]
        for column in table.columns:
            if column.column_type == ColumnType.ID:
                lines.append(f'    "{column.companion_key_name}" BIGINT,')
            lines.append(f'    "{column.column_name}" {column.column_type.sql_type},')
        lines.append(f"    data {self.dbt.json_type()},")
        lines.append("    tenant_id SMALLINT NOT NULL,")
        lines.append("    PRIMARY KEY (sk),")
        lines.append("    UNIQUE (id)")

        conn.exec(
            f"CREATE TABLE {loading_table} (\n" + "\n".join(lines) + "\n)"
            + self.dbt.table_keys("sk", "sk") + ";"
        )

        if self.dbt.supports_comments and table.source_path:
            comment = table.source_path
            if table.module_name:
                comment += f" in {table.module_name}"
            logger.debug(f"Setting comment on table: {table.table_name}")
            conn.exec(f"COMMENT ON TABLE {loading_table} IS {self.dbt.encode_string_const(comment)};")

        if self.dbt.supports_grants and self.settings.grant_select_to:
            conn.exec(f"GRANT SELECT ON {loading_table} TO {self.settings.grant_select_to};")
