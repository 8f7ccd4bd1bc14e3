from ...core.constants import (
    HISTORY_TABLE_SUFFIX,
    LATEST_HISTORY_TABLE_SUFFIX,
    LOADING_TABLE_SUFFIX,
)


def loading_table_name(table_name: str) -> str:
    return table_name + LOADING_TABLE_SUFFIX


def history_table_name(table_name: str) -> str:
    return table_name + HISTORY_TABLE_SUFFIX


def latest_history_table_name(table_name: str) -> str:
    return table_name + LATEST_HISTORY_TABLE_SUFFIX
