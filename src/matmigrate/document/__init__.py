"""Material document parsing and rewriting."""

from .rewriter import DocumentReport, DocumentRewriter, is_texture_key
from .sjson import DuplicateKeyDict

__all__ = [
    "DocumentReport",
    "DocumentRewriter",
    "DuplicateKeyDict",
    "is_texture_key",
]
