"""
Redmine Issue Importer

Imports a Redmine project's issues, journals, versions and categories into a
field-based issue tracker, with status/tracker/priority mapping and dry runs.
"""

from __future__ import annotations

from .cli import main
from .exceptions import (
    ImportCancelledError,
    MappingConfigError,
    MigrationError,
    SourceNotFoundError,
    SourceRequestError,
)
from .mapping import ImportOption
from .models import ImportResult
from .orchestrator import IssueImporter
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "ImportCancelledError",
    "ImportOption",
    "ImportResult",
    "IssueImporter",
    "MappingConfigError",
    "MigrationError",
    "SourceNotFoundError",
    "SourceRequestError",
    "main",
    "setup_logging",
]
