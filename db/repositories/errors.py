"""
Repository-layer exceptions for dataset storage and persistence flows.
"""

from __future__ import annotations


class DatasetRepositoryError(Exception):
    """Base exception for dataset repository failures."""


class FileStorageError(DatasetRepositoryError):
    """Raised when a stored dataset file cannot be written, located or opened."""
