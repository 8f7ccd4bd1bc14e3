"""
Stage, merge and promote tables
"""

import argparse

from ....core.enums import TableStatus
from ....core.logging import setup_logging
from ....services.etl_service import build_etl_service
from .base import BaseCommand


class Command(BaseCommand):
    name = "stage"
    description = "Stage extracted pages into loading tables, merge history and promote"

    def add_arguments(self, parser: argparse.ArgumentParser):
        self.add_source_arguments(parser)
        parser.add_argument("--database-url", help="SQLAlchemy database URL")
        parser.add_argument("--workers", type=int, dest="max_workers", help="Tables processed in parallel")

    def handle(self, load_dir=None, tables=None, schema_file=None, dialect=None,
               log_level=None, database_url=None, max_workers=None, **kwargs) -> int:
        settings = self.build_settings(
            load_dir=load_dir,
            tables=tables,
            dialect=dialect,
            log_level=log_level,
            database_url=database_url,
            max_workers=max_workers,
        )
        setup_logging(settings)
        table_schemas = self.resolve_tables(settings, schema_file)

        service = build_etl_service(settings)
        try:
            results = service.run(table_schemas)
        finally:
            service.db.dispose()

        for result in results:
            if result.status == TableStatus.FAILED:
                self.print_error(f"{result.table_name}: {result.error}")
            elif result.status == TableStatus.SKIPPED:
                self.print_warning(f"{result.table_name}: skipped")
            else:
                self.print_success(
                    f"{result.table_name}: {result.stage.records_loaded} records, "
                    f"{result.history_rows_appended} history rows appended"
                )

        return 1 if any(not r.succeeded for r in results) else 0
