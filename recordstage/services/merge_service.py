"""
History merge and promotion.

History is append-only. A snapshot row is appended only when no version of
its (tenant_id, id) exists yet, or when the latest version's payload text
differs. Snapshot rows whose payload is NULL are never appended, so a
record that disappears or becomes too large leaves no tombstone. When two
history rows of a pair share the latest timestamp both count as latest.
"""

from ..core.constants import MAX_VALUE_LENGTH
from ..infrastructure.db.connection import DatabaseManager, SqlConnection
from ..infrastructure.db.dialect import DBType
from ..infrastructure.db.names import history_table_name, latest_history_table_name, loading_table_name
from ..schemas.table_schema import TableSchema
from ..utils.logger import get_logger

logger = get_logger(__name__)


class MergeService:

    def __init__(self, dbt: DBType):
        self.dbt = dbt

    def ensure_history_table(self, conn: SqlConnection, table_name: str) -> None:
        history_table = history_table_name(table_name)
        conn.exec(
            f"CREATE TABLE IF NOT EXISTS {history_table} (\n"
            f"    id VARCHAR({MAX_VALUE_LENGTH}) NOT NULL,\n"
            f"    data {self.dbt.json_type()},\n"
            f"    updated TIMESTAMPTZ NOT NULL,\n"
            f"    tenant_id SMALLINT NOT NULL\n"
            f"){self.dbt.table_keys('id', 'updated')};"
        )

    def extract_latest(self, conn: SqlConnection, table_name: str) -> None:
        """Materialize the latest version of every (tenant_id, id) pair."""
        history_table = history_table_name(table_name)
        latest_table = latest_history_table_name(table_name)
        conn.exec(f"DROP TABLE IF EXISTS {latest_table};")
        conn.exec(
            f"CREATE TEMPORARY TABLE {latest_table} AS\n"
            f"SELECT id, data, tenant_id\n"
            f"    FROM {history_table} AS h1\n"
            f"    WHERE NOT EXISTS\n"
            f"      ( SELECT 1\n"
            f"            FROM {history_table} AS h2\n"
            f"            WHERE h1.tenant_id = h2.tenant_id AND\n"
            f"                  h1.id = h2.id AND\n"
            f"                  h1.updated < h2.updated\n"
            f"      );"
        )

    def append_changes(self, conn: SqlConnection, table_name: str) -> int:
        """Append snapshot rows that are new or changed; returns rows appended."""
        history_table = history_table_name(table_name)
        latest_table = latest_history_table_name(table_name)
        loading_table = loading_table_name(table_name)
        appended = conn.exec(
            f"INSERT INTO {history_table}\n"
            f"    (id, data, updated, tenant_id)\n"
            f"SELECT s.id,\n"
            f"       s.data,\n"
            f"       {self.dbt.current_timestamp()},\n"
            f"       s.tenant_id\n"
            f"    FROM {loading_table} AS s\n"
            f"        LEFT JOIN {latest_table} AS h\n"
            f"            ON s.tenant_id = h.tenant_id AND\n"
            f"               s.id = h.id\n"
            f"    WHERE s.data IS NOT NULL AND\n"
            f"          ( h.id IS NULL OR\n"
            f"            {self.dbt.text_cast('s.data')} <> {self.dbt.text_cast('h.data')} );"
        )
        conn.exec(f"DROP TABLE IF EXISTS {latest_table};")
        return appended

    def merge_table(self, conn: SqlConnection, table: TableSchema) -> int:
        self.ensure_history_table(conn, table.table_name)
        self.extract_latest(conn, table.table_name)
        appended = self.append_changes(conn, table.table_name)
        if appended >= 0:
            logger.info(f"Merge: {table.table_name}: {appended} history rows appended")
        return appended

    def place_table(self, conn: SqlConnection, table: TableSchema) -> None:
        """Replace the live table with the loading table."""
        conn.exec(f"DROP TABLE IF EXISTS {table.table_name};")
        conn.exec(f"ALTER TABLE {loading_table_name(table.table_name)} RENAME TO {table.table_name};")
        logger.debug(f"Promoted loading table: {table.table_name}")

    def merge_and_place(self, db: DatabaseManager, table: TableSchema) -> int:
        """Merge into history and promote, in one transaction."""
        with db.transaction() as conn:
            appended = self.merge_table(conn, table)
            self.place_table(conn, table)
        return appended
