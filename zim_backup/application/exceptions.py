"""
Core business exceptions for the backup application.

This module defines a hierarchy of custom exceptions to allow for granular
error handling and clear separation of failure domains. Every exception
carries the process exit status the entry point should terminate with.
"""


class ZimBackupError(Exception):
    """Base exception for all component-specific errors."""

    exit_code = 1


# --- Configuration Errors ---

class ConfigurationError(ZimBackupError):
    """Raised for errors related to application configuration."""
    pass


# --- Infrastructure Errors ---

class InfrastructureError(ZimBackupError):
    """Base class for errors related to external systems (network, disk)."""
    pass


class ResolutionError(InfrastructureError):
    """Raised when no mirror yields a usable URL for the latest snapshot."""

    exit_code = 2


class TransferError(InfrastructureError):
    """Raised when a file download fails."""
    pass


class IncompleteTransferError(TransferError):
    """Raised when a response body ends before its announced length."""
    pass


# --- Domain/Business Logic Errors ---

class DomainError(ZimBackupError):
    """Base class for errors related to business logic failures."""
    pass


class IntegrityError(DomainError):
    """Raised when a file's digest does not match its checksum sidecar."""

    exit_code = 3

    def __init__(self, filename: str, expected: str, actual: str):
        super().__init__(
            f"SHA256 mismatch for {filename}. "
            f"Expected {expected or '<empty>'}, got {actual}"
        )
        self.filename = filename
        self.expected = expected
        self.actual = actual
