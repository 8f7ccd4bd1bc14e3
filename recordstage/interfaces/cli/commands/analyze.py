"""
Print the schema inferred from extracted pages
"""

import argparse
import json

from ....core.logging import setup_logging
from ....infrastructure.db.connection import DatabaseManager
from ....infrastructure.db.dialect import get_dialect
from ....infrastructure.storage.page_source import LocalPageSource
from ....services.idmap_service import IDMap
from ....services.staging_service import StagingService
from .base import BaseCommand


class Command(BaseCommand):
    name = "analyze"
    description = "Run the analysis pass only and print inferred columns"

    def add_arguments(self, parser: argparse.ArgumentParser):
        self.add_source_arguments(parser)

    def handle(self, load_dir=None, tables=None, schema_file=None, dialect=None,
               log_level=None, **kwargs) -> int:
        settings = self.build_settings(
            load_dir=load_dir, tables=tables, dialect=dialect, log_level=log_level,
        )
        setup_logging(settings)

        # The analysis pass never touches the database
        staging = StagingService(
            DatabaseManager(settings),
            get_dialect(settings.dialect),
            LocalPageSource(settings.load_dir),
            IDMap(),
            settings=settings,
        )
        output = []
        for table in self.resolve_tables(settings, schema_file):
            collector = staging.analyze_table(table)
            entry = table.to_dict()
            entry["records"] = collector.records_seen
            output.append(entry)

        print(json.dumps(output, indent=2))
        return 0
