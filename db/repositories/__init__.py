"""
Repository layer exports.
"""

from db.repositories.dataset_repository import DatasetRepository
from db.repositories.errors import (
    DatasetRepositoryError,
    FileStorageError,
)
from db.repositories.storage import FileStorageBackend, LocalFileStorage
from db.repositories.team_repository import TeamMembershipRepository

__all__ = [
    "DatasetRepository",
    "TeamMembershipRepository",
    "FileStorageBackend",
    "LocalFileStorage",
    "DatasetRepositoryError",
    "FileStorageError",
]
