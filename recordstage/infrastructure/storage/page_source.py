"""
Page sources.

A page source delivers the pages extracted for a table: a page count up
front, then one binary stream per zero-based page index.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from ...core.constants import PAGE_COUNT_SUFFIX, PAGE_FILE_SUFFIX, READ_BUFFER_SIZE, TEST_PAGE_SUFFIX
from ...core.exceptions import PageCountError

logger = logging.getLogger(__name__)


class PageSource(ABC):
    """Abstract base class for page sources."""

    @abstractmethod
    def page_count(self, table_name: str) -> int:
        """
        Number of pages available for a table.

        A missing count marker means zero pages.
        """
        pass

    @abstractmethod
    def open_page(self, table_name: str, page: int) -> Optional[BinaryIO]:
        """
        Open one page.

        Returns:
            Binary stream, or None when the page does not exist
        """
        pass

    def extra_pages(self, table_name: str) -> Iterator[BinaryIO]:
        """Additional pages staged after the numbered ones."""
        return iter(())


class LocalPageSource(PageSource):
    """
    Pages stored in a local directory:

        <dir>/<table>_count.txt   page count
        <dir>/<table>_<n>.json    page n
        <dir>/<table>_test.json   optional extra page
    """

    def __init__(self, base_path: Union[str, Path], include_test_pages: bool = True):
        self.base_path = Path(base_path)
        self.include_test_pages = include_test_pages

    def _path(self, table_name: str, suffix: str) -> Path:
        return self.base_path / f"{table_name}{suffix}"

    def page_count(self, table_name: str) -> int:
        path = self._path(table_name, PAGE_COUNT_SUFFIX)
        if not path.exists():
            logger.warning(f"File not found: {path}")
            return 0
        try:
            text = path.read_text(encoding="utf-8").strip()
            count = int(text.split()[0])
        except (OSError, ValueError, IndexError) as e:
            raise PageCountError(
                f"Unable to read page count from {path}: {e}",
                table=table_name,
                file_path=str(path),
            )
        if count < 0:
            raise PageCountError(
                f"Negative page count in {path}", table=table_name, file_path=str(path)
            )
        return count

    def open_page(self, table_name: str, page: int) -> Optional[BinaryIO]:
        path = self._path(table_name, f"_{page}{PAGE_FILE_SUFFIX}")
        if not path.exists():
            return None
        return open(path, "rb", buffering=READ_BUFFER_SIZE)

    def extra_pages(self, table_name: str) -> Iterator[BinaryIO]:
        if not self.include_test_pages:
            return
        path = self._path(table_name, TEST_PAGE_SUFFIX)
        if path.exists():
            logger.debug(f"Staging: {table_name}: test file {path}")
            with open(path, "rb", buffering=READ_BUFFER_SIZE) as stream:
                yield stream
