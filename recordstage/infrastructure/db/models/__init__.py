from .idmap import IdMapEntry

__all__ = ["IdMapEntry"]
