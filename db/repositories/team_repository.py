"""
Team membership lookups used for dataset authorization.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.team import TeamMember, TeamRole


class TeamMembershipRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_role(self, *, user_id: uuid.UUID, team_id: uuid.UUID) -> str | None:
        stmt = (
            select(TeamMember.role)
            .where(TeamMember.team_id == team_id)
            .where(TeamMember.user_id == user_id)
        )
        return self._session.scalars(stmt).first()

    def is_team_admin(self, *, user_id: uuid.UUID, team_id: uuid.UUID) -> bool:
        return self.get_role(user_id=user_id, team_id=team_id) == TeamRole.ADMIN

    def is_team_member(self, *, user_id: uuid.UUID, team_id: uuid.UUID) -> bool:
        return self.get_role(user_id=user_id, team_id=team_id) is not None
