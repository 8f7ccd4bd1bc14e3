from .connection import DatabaseManager, SqlConnection
from .dialect import DBType, get_dialect

__all__ = ["DatabaseManager", "SqlConnection", "DBType", "get_dialect"]
