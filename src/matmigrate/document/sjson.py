"""Lenient JSON loading for material documents.

Material files in the wild are hand edited: trailing commas are common and
duplicate keys happen. Trailing commas are accepted. Duplicate keys resolve
last-write-wins, and the object that carried them is tagged so the rewriter
can refuse to touch a material containing one.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

from ..errors import document_error, document_write_error

__all__ = [
    "DuplicateKeyDict",
    "strip_trailing_commas",
    "loads",
    "load",
    "dumps",
    "dump",
    "has_duplicate_keys",
]

# Strings are matched first so commas inside them are never touched.
_TRAILING_COMMA_RE = re.compile(r'"(?:\\.|[^"\\])*"|,(\s*[\]}])')


class DuplicateKeyDict(dict):
    """A JSON object that contained the same key more than once."""

    def __init__(self, pairs: Sequence[Tuple[str, Any]], duplicates: List[str]):
        super().__init__(pairs)
        self.duplicate_keys = duplicates


def _object_pairs(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    seen: set[str] = set()
    dups: List[str] = []
    for key, _ in pairs:
        if key in seen:
            dups.append(key)
        seen.add(key)
    if dups:
        return DuplicateKeyDict(pairs, dups)
    return dict(pairs)


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(
        lambda m: m.group(1) if m.group(1) is not None else m.group(0), text
    )


def loads(text: str, *, source: str = "<string>") -> Dict[str, Any]:
    """Parse a material document; the root must be an object."""
    try:
        data = json.loads(
            strip_trailing_commas(text), object_pairs_hook=_object_pairs
        )
    except json.JSONDecodeError as e:
        raise document_error(source, str(e)) from e
    if not isinstance(data, dict):
        raise document_error(source, "JSON root is not an object")
    return data


def load(path: str | Path) -> Dict[str, Any]:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise document_error(str(p), str(e)) from e
    return loads(text, source=str(p))


def dumps(document: Dict[str, Any]) -> str:
    return json.dumps(document, indent=2)


def dump(document: Dict[str, Any], path: str | Path) -> None:
    """Save ``document`` to ``path`` through a temporary sibling.

    On failure the original file is left as it was and
    :class:`~matmigrate.errors.DocumentWriteError` is raised.
    """
    p = Path(path)
    text = dumps(document)
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{p.name}.", suffix=".part", dir=p.parent
        )
        with os.fdopen(fd, "w", encoding="utf-8") as out:
            out.write(text)
        os.replace(tmp_name, p)
        tmp_name = None
    except OSError as e:
        raise document_write_error(str(p), str(e)) from e
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass


def has_duplicate_keys(node: Any) -> bool:
    """Return True if ``node`` or anything below it had duplicate keys."""
    stack = [node]
    while stack:
        cur = stack.pop()
        if isinstance(cur, DuplicateKeyDict):
            return True
        if isinstance(cur, dict):
            stack.extend(cur.values())
        elif isinstance(cur, list):
            stack.extend(cur)
    return False
