# ==============================================
# recordstage/processors/canonicalizer.py
# ==============================================
"""
Deterministic ordering of record members.

The identifier member sorts first and every other member sorts by name, at
every nesting level. Two records holding the same data therefore render to
byte-identical text, which is what history merge compares.
"""

import json
from typing import Any, Tuple

from ..core.constants import ID_FIELD


def _member_sort_key(name: str) -> Tuple[bool, str]:
    return (name != ID_FIELD, name)


def canonicalize(node: Any) -> Any:
    """
    Return a canonically ordered copy of a parsed JSON tree.

    Args:
        node: Tree produced by json.loads

    Returns:
        New tree with object members reordered; arrays keep element order
    """
    if isinstance(node, dict):
        return {
            key: canonicalize(node[key])
            for key in sorted(node, key=_member_sort_key)
        }
    if isinstance(node, list):
        return [canonicalize(item) for item in node]
    return node


def canonical_text(node: Any, pretty: bool = True, ordered: bool = False) -> str:
    """
    Render a tree as canonical JSON text.

    Args:
        node: Tree to render
        pretty: Indented output when True, compact otherwise
        ordered: Skip reordering when the tree is already canonical
    """
    if not ordered:
        node = canonicalize(node)
    if pretty:
        return json.dumps(node, indent=4, ensure_ascii=False)
    return json.dumps(node, separators=(",", ":"), ensure_ascii=False)


def canonicalize_text(text: str) -> str:
    """Canonicalize JSON text (compact form)."""
    return canonical_text(json.loads(text), pretty=False)
