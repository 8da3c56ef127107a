"""Error definitions for matmigrate."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

E_BUNDLE_READ = "E_BUNDLE_READ"
E_EXTRACT = "E_EXTRACT"
E_DOC_PARSE = "E_DOC_PARSE"
E_DOC_WRITE = "E_DOC_WRITE"
E_MATERIAL_FORMAT = "E_MATERIAL_FORMAT"
E_CONFIG = "E_CONFIG"
E_LEVEL_INPUT = "E_LEVEL_INPUT"


@dataclass
class MigrateError(Exception):
    code: str
    message: str
    context: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}" + (
            f" | ctx={self.context}" if self.context else ""
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context or {},
        }


# Recoverable: scoped to one bundle, one extraction, one document or one
# material. The batch always continues past these.


class BundleReadError(MigrateError):
    pass


class ExtractionError(MigrateError):
    pass


class DocumentParseError(MigrateError):
    pass


class DocumentWriteError(MigrateError):
    pass


class MaterialFormatError(MigrateError):
    pass


# Fatal to the run; raised only by the surrounding layers.


class ConfigError(MigrateError):
    pass


class LevelInputError(MigrateError):
    pass


def bundle_error(bundle: str, reason: str) -> BundleReadError:
    return BundleReadError(
        code=E_BUNDLE_READ,
        message=f"Error reading {bundle}: {reason}",
        context={"bundle": bundle},
    )


def extraction_error(
    bundle: str, member: str, destination: str, reason: str
) -> ExtractionError:
    return ExtractionError(
        code=E_EXTRACT,
        message=f"Failed to extract {member} to {destination}: {reason}",
        context={"bundle": bundle, "member": member},
    )


def document_error(path: str, reason: str) -> DocumentParseError:
    return DocumentParseError(
        code=E_DOC_PARSE,
        message=f"Failed to parse JSON. {reason}",
        context={"path": path},
    )


def document_write_error(path: str, reason: str) -> DocumentWriteError:
    return DocumentWriteError(
        code=E_DOC_WRITE,
        message=f"Failed to save {path}: {reason}",
        context={"path": path},
    )


def material_error(
    name: str, reason: str, context: Optional[Dict[str, Any]] = None
) -> MaterialFormatError:
    return MaterialFormatError(
        code=E_MATERIAL_FORMAT,
        message=f"Material '{name}' {reason}",
        context=context,
    )


def config_error(
    message: str, context: Optional[Dict[str, Any]] = None
) -> ConfigError:
    return ConfigError(code=E_CONFIG, message=message, context=context)


def level_error(
    message: str, context: Optional[Dict[str, Any]] = None
) -> LevelInputError:
    return LevelInputError(code=E_LEVEL_INPUT, message=message, context=context)



__all__ = [
    "MigrateError",
    "BundleReadError",
    "ExtractionError",
    "DocumentParseError",
    "DocumentWriteError",
    "MaterialFormatError",
    "ConfigError",
    "LevelInputError",
    "bundle_error",
    "extraction_error",
    "document_error",
    "document_write_error",
    "material_error",
    "config_error",
    "level_error",
    "E_BUNDLE_READ",
    "E_EXTRACT",
    "E_DOC_PARSE",
    "E_DOC_WRITE",
    "E_MATERIAL_FORMAT",
    "E_CONFIG",
    "E_LEVEL_INPUT",
]
