"""Stage paged JSON extracts into relational tables with change history."""

from .core.constants import VERSION

__version__ = VERSION
