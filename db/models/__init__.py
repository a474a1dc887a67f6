"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.dataset import Dataset, QualityStatus
from db.models.team import Team, TeamMember, TeamRole
from db.models.user import User

__all__ = [
    "Dataset",
    "QualityStatus",
    "Team",
    "TeamMember",
    "TeamRole",
    "User",
]
