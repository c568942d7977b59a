"""
Custom exception classes for the Redmine issue importer.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for import errors."""


class SourceRequestError(MigrationError):
    """Raised when a Redmine request fails (network error, HTTP error, malformed URL)."""


class SourceNotFoundError(SourceRequestError):
    """Raised when Redmine answers 404 for the requested resource."""


class MappingConfigError(MigrationError):
    """Raised when an import mapping refers to a field missing from the target field schema."""


class ImportCancelledError(MigrationError):
    """Raised when the import was interrupted by the operator."""
