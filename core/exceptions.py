"""
Custom exceptions for the swap ingestion pipeline with structured error context.

Each exception carries a context dictionary for debugging and monitoring.
Errors are scoped by how far they propagate:

    ETLException (base)
    ├── ExtractionError
    │   ├── ApiError            pass-fatal for the current iteration
    │   └── PriceFetchError     enrichment only, record keeps null USD fields
    ├── TransformationError
    │   └── TransformError      record-fatal, the batch continues
    │       ├── MissingTxId
    │       ├── MissingInData
    │       ├── MissingOutData
    │       ├── MissingInCoin
    │       ├── MissingAssetName
    │       ├── InvalidAmount
    │       └── InvalidTimestamp
    ├── LoadError
    │   └── DatabaseError       batch-fatal
    ├── CheckpointError
    │   └── FileError           pass-fatal, cursor is not advanced
    └── ConfigurationError      startup-fatal
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ETLException(Exception):
    """
    Base exception for all ingestion errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, cursor, tx_id, ...)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        visible = {k: v for k, v in self.context.items() if k != "error_timestamp"}
        if visible:
            context_str = ", ".join(f"{k}={v}" for k, v in visible.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for upstream feed failures."""
    pass


class ApiError(ExtractionError):
    """
    Upstream unreachable or undecodable after the retry budget is exhausted.

    Context should include:
        - url: The endpoint that failed
        - attempts: Number of attempts made
        - status_code: Last HTTP status (if any)
    """
    pass


class PriceFetchError(ExtractionError):
    """
    Price lookup against the market-data service failed.

    Context should include:
        - asset: Canonical asset name
        - date: Requested date (dd-mm-yyyy)
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(ETLException):
    """Base exception for transformation failures."""
    pass


class TransformError(TransformationError):
    """
    A single raw record could not be mapped to a canonical record.

    Only the offending record is skipped; the surrounding page or batch
    continues.
    """
    reason = "malformed record"

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message or self.reason, context, original_exception)


class MissingTxId(TransformError):
    reason = "Missing or invalid TxId"


class MissingInData(TransformError):
    reason = "No In Data Found"


class MissingOutData(TransformError):
    reason = "No Out Data Found"


class MissingInCoin(TransformError):
    reason = "Missing in_coin"


class MissingAssetName(TransformError):
    reason = "Error parsing asset name"


class InvalidAmount(TransformError):
    reason = "Amount is not an integer-scaled number"


class InvalidTimestamp(TransformError):
    reason = "Timestamp is not an epoch value"


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for storage failures."""
    pass


class DatabaseError(LoadError):
    """
    Connection or query failure that made a whole batch unwritable.

    Context should include:
        - operation: INSERT / UPSERT / SELECT
        - table_name: Name of the table
        - batch_size: Number of records in the batch
    """
    pass


# ============================================================================
# Checkpoint Errors
# ============================================================================

class CheckpointError(ETLException):
    """Base exception for checkpoint management failures."""
    pass


class FileError(CheckpointError):
    """
    The checkpoint file could not be read or written.

    Context should include:
        - path: Checkpoint file path
        - operation: read / write
    """
    pass


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(ETLException):
    """Invalid wiring detected at startup (e.g. table registry)."""
    pass
