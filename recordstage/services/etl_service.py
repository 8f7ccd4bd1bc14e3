"""
Run orchestration across tables.

Each table is an independent unit of work: stage (analyze, load), then
merge into history and promote. A table that fails is reported and does
not affect the others; tables promoted earlier stay in place.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from ..core.config import Settings, get_settings
from ..core.enums import TableStatus
from ..core.exceptions import AppException
from ..infrastructure.db.connection import DatabaseManager
from ..infrastructure.db.dialect import DBType, get_dialect
from ..infrastructure.storage.page_source import LocalPageSource, PageSource
from ..schemas.table_schema import TableSchema
from ..utils.logger import get_logger
from .idmap_service import DatabaseKeyStore, IDMap
from .merge_service import MergeService
from .staging_service import StageResult, StagingService

logger = get_logger(__name__)


@dataclass
class TableRunResult:
    table_name: str
    status: TableStatus
    stage: Optional[StageResult] = None
    history_rows_appended: int = 0
    error: Optional[AppException] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status != TableStatus.FAILED


class ETLService:

    def __init__(
        self,
        db: DatabaseManager,
        dbt: DBType,
        page_source: PageSource,
        idmap: IDMap,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.db = db
        self.dbt = dbt
        self.idmap = idmap
        self.staging = StagingService(db, dbt, page_source, idmap, settings=self.settings)
        self.merge = MergeService(dbt)

    def process_table(self, table: TableSchema) -> TableRunResult:
        result = TableRunResult(table_name=table.table_name, status=TableStatus.COMPLETED)
        if table.skip:
            result.status = TableStatus.SKIPPED
            logger.info(f"Skipping table: {table.table_name}")
            return result

        result.started_at = datetime.utcnow()
        try:
            result.stage = self.staging.stage_table(table)
            result.history_rows_appended = self.merge.merge_and_place(self.db, table)
        except AppException as e:
            result.status = TableStatus.FAILED
            result.error = e
            logger.error(f"Table {table.table_name} failed: {e}", extra={"extra_fields": e.details})
        finally:
            result.finished_at = datetime.utcnow()
        return result

    def run(self, tables: List[TableSchema]) -> List[TableRunResult]:
        """
        Process tables, in parallel when max_workers > 1.

        Returns:
            One result per table, in input order
        """
        logger.info(f"Starting run: {len(tables)} tables, {self.settings.max_workers} workers")
        if self.settings.max_workers == 1 or len(tables) <= 1:
            results = [self.process_table(table) for table in tables]
        else:
            with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
                results = list(executor.map(self.process_table, tables))

        self.idmap.sync()

        failed = [r.table_name for r in results if not r.succeeded]
        if failed:
            logger.warning(f"Run finished with {len(failed)} failed tables: {', '.join(failed)}")
        else:
            logger.info("Run finished")
        return results


def build_etl_service(settings: Optional[Settings] = None, load_dir: Optional[str] = None) -> ETLService:
    """Wire an ETLService from configuration."""
    settings = settings or get_settings()
    db = DatabaseManager(settings)
    db.init_db()
    return ETLService(
        db=db,
        dbt=get_dialect(settings.dialect),
        page_source=LocalPageSource(load_dir or settings.load_dir),
        idmap=IDMap(DatabaseKeyStore(db)),
        settings=settings,
    )
