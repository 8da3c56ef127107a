"""matmigrate package

Relinks stale texture references in BeamNG level ``*.materials.json`` files
to assets that exist in the current game layout, optionally copying them into
the level.

The resolution engine lives in :mod:`matmigrate.resolver`; the one-call entry
point is :func:`matmigrate.api.migrate_level`.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
