"""
Base Command Class for all CLI commands
"""

import argparse
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ....core.config import Settings, get_settings
from ....core.exceptions import ConfigurationError
from ....schemas.table_schema import TableSchema, load_table_schemas


class BaseCommand(ABC):
    """Base class for all commands"""

    name = "command"
    description = "No description provided"

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog=f"recordstage {self.name}",
            description=self.description,
        )
        self.add_arguments(parser)
        return parser

    def add_arguments(self, parser: argparse.ArgumentParser):
        """Override to add command-specific arguments"""
        pass

    @abstractmethod
    def handle(self, *args, **kwargs) -> int:
        """Run the command; returns the process exit status"""
        pass

    def run(self, args: List[str]) -> int:
        parsed_args = self.parser.parse_args(args)
        return self.handle(**vars(parsed_args))

    def help(self):
        self.parser.print_help()

    def add_source_arguments(self, parser: argparse.ArgumentParser):
        parser.add_argument("--load-dir", help="Directory holding extracted page files")
        parser.add_argument(
            "--table", action="append", dest="tables", default=None,
            help="Table to process (repeatable)",
        )
        parser.add_argument("--schema-file", help="JSON file listing table definitions")
        parser.add_argument("--dialect", choices=["postgresql", "redshift", "sqlite"])
        parser.add_argument("--log-level", help="Logging level, e.g. DEBUG")

    def build_settings(self, **overrides: Optional[Any]) -> Settings:
        settings = get_settings()
        update: Dict[str, Any] = {k: v for k, v in overrides.items() if v is not None}
        logging_level = update.pop("log_level", None)
        if logging_level:
            update["logging"] = settings.logging.model_copy(update={"level": logging_level})
        return settings.model_copy(update=update)

    def resolve_tables(self, settings: Settings, schema_file: Optional[str]) -> List[TableSchema]:
        if schema_file:
            tables = load_table_schemas(schema_file)
            if settings.tables:
                wanted = set(settings.tables)
                tables = [t for t in tables if t.table_name in wanted]
        else:
            tables = load_table_schemas(settings.tables)
        if not tables:
            raise ConfigurationError("No tables selected", setting="tables")
        return tables

    def print_success(self, message: str):
        print(f"\033[92m✓ {message}\033[0m")

    def print_error(self, message: str):
        print(f"\033[91m✗ {message}\033[0m")

    def print_warning(self, message: str):
        print(f"\033[93m⚠ {message}\033[0m")

    def print_info(self, message: str):
        print(f"\033[94mℹ {message}\033[0m")
