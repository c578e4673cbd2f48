"""Custom exception types for bibdb operations."""


class BibdbError(Exception):
    """Base exception for all bibdb operations."""


class FileOperationError(BibdbError):
    """Raised when file I/O operations fail."""


class InvalidDataError(BibdbError):
    """Raised when data passed to the store is structurally invalid."""


class ConfigError(BibdbError):
    """Raised when a configuration file cannot be loaded."""


class FilterSyntaxError(BibdbError):
    """Raised when filter query text cannot be parsed."""


class BackupError(BibdbError):
    """Raised when backup operations fail."""
