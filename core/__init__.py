"""
Core utilities and configuration for the swap ingestion service.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session factories
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities
    retry: Bounded retry returning a typed outcome
    rate_limit: Per-feed request gate

Usage:
    from core.config import settings
    from core.database import get_session_factory
    from core.exceptions import ApiError, TransformError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "get_session_factory",
    "setup_logging",
    "retry_async",
    "RequestGate",
    # Exceptions
    "ETLException",
    "ExtractionError",
    "ApiError",
    "PriceFetchError",
    "TransformationError",
    "TransformError",
    "LoadError",
    "DatabaseError",
    "CheckpointError",
    "FileError",
    "ConfigurationError",
]
