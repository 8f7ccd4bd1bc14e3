# ==============================================
# recordstage/processors/anonymizer.py
# ==============================================
"""
Redaction of personal data during the load pass.

Field paths are slash-delimited and start after the record root, e.g.
"/personal/email". Array elements appear as their index ("/addresses/0/city");
configured rules may use "*" in place of an index.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional

PathPredicate = Callable[[str], bool]


class PathSetPredicate:
    """Matches exact field paths, with "*" standing for any single segment."""

    def __init__(self, paths: Iterable[str]):
        self.exact = set()
        self.patterns: List[List[str]] = []
        for path in paths:
            if "*" in path:
                self.patterns.append(path.split("/"))
            else:
                self.exact.add(path)

    def __call__(self, path: str) -> bool:
        if path in self.exact:
            return True
        if not self.patterns:
            return False
        segments = path.split("/")
        for pattern in self.patterns:
            if len(pattern) != len(segments):
                continue
            if all(p == "*" or p == s for p, s in zip(pattern, segments)):
                return True
        return False


class AnonymizationPolicy:
    """Per-table redaction rules."""

    def __init__(self, rules: Optional[Dict[str, Iterable[str]]] = None):
        self.rules = {table: list(paths) for table, paths in (rules or {}).items()}

    def predicate_for(self, table_name: str) -> Optional[PathPredicate]:
        paths = self.rules.get(table_name)
        if not paths:
            return None
        return PathSetPredicate(paths)


def _redacted(value: Any) -> Any:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return 0
    if isinstance(value, str):
        return ""
    return value


def redact(node: Any, predicate: PathPredicate, path: str = "") -> Any:
    """
    Return a copy of the tree with flagged scalar values replaced.

    Booleans become false, numbers 0 and strings empty; nulls are kept.
    """
    if isinstance(node, dict):
        return {
            key: redact(value, predicate, f"{path}/{key}")
            for key, value in node.items()
        }
    if isinstance(node, list):
        return [
            redact(item, predicate, f"{path}/{index}")
            for index, item in enumerate(node)
        ]
    if node is not None and predicate(path):
        return _redacted(node)
    return node
