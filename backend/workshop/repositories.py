"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
teams, phase data, cohorts, votes). Repositories return SQLModel
objects and perform commits/refreshes where appropriate.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional
from sqlmodel import Session, select
from sqlalchemy import func
from . import models


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        stmt = select(models.User).where(models.User.username == username)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)


class TeamRepository:
    """CRUD operations and lookups for `Team` rows."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, team: models.Team) -> models.Team:
        self.session.add(team)
        self.session.commit()
        self.session.refresh(team)
        return team

    def save(self, team: models.Team) -> models.Team:
        """Persist changes to an existing team and bump `updated_at`."""
        team.updated_at = _utcnow()
        self.session.add(team)
        self.session.commit()
        self.session.refresh(team)
        return team

    def get(self, team_id: int) -> Optional[models.Team]:
        return self.session.get(models.Team, team_id)

    def get_by_code(self, code: str) -> Optional[models.Team]:
        stmt = select(models.Team).where(models.Team.code == code.upper())
        return self.session.exec(stmt).first()

    def get_by_access_token(self, token: str) -> Optional[models.Team]:
        stmt = select(models.Team).where(models.Team.access_token == token)
        return self.session.exec(stmt).first()

    def code_exists(self, code: str) -> bool:
        stmt = select(models.Team.id).where(models.Team.code == code.upper())
        return self.session.exec(stmt).first() is not None

    def list_all(self) -> List[models.Team]:
        stmt = select(models.Team).order_by(models.Team.created_at, models.Team.id)
        return self.session.exec(stmt).all()

    def list_by_ids(self, team_ids: List[int]) -> List[models.Team]:
        stmt = select(models.Team).where(models.Team.id.in_(team_ids))
        return self.session.exec(stmt).all()

    def list_by_cohort(self, cohort_tag: str) -> List[models.Team]:
        stmt = select(models.Team).where(models.Team.cohort_tag == cohort_tag).order_by(models.Team.name, models.Team.id)
        return self.session.exec(stmt).all()

    def list_submitted_in_cohort(self, cohort_tag: str) -> List[models.Team]:
        """Teams of a cohort that have a website submission."""
        stmt = select(models.Team).where(
            models.Team.cohort_tag == cohort_tag,
            models.Team.submitted_website_url.is_not(None),
            models.Team.submitted_website_url != '',
        ).order_by(models.Team.name, models.Team.id)
        return self.session.exec(stmt).all()

    def recent_avatars(self, limit: int) -> List[str]:
        """Avatar icons of the `limit` most recently created teams."""
        stmt = select(models.Team.avatar_icon).order_by(models.Team.created_at.desc(), models.Team.id.desc()).limit(limit)
        return [a for a in self.session.exec(stmt).all() if a]

    def list_missing_access_token(self) -> List[models.Team]:
        stmt = select(models.Team).where((models.Team.access_token.is_(None)) | (models.Team.access_token == ''))
        return self.session.exec(stmt).all()


class PhaseDataRepository:
    """Upserts and queries for per-phase form answers."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, team_id: int, phase_number: int) -> Optional[models.PhaseData]:
        stmt = select(models.PhaseData).where(
            models.PhaseData.team_id == team_id,
            models.PhaseData.phase_number == phase_number,
        )
        return self.session.exec(stmt).first()

    def upsert(self, team_id: int, phase_number: int, data: dict) -> models.PhaseData:
        """Insert or replace the answers of `(team_id, phase_number)`."""
        existing = self.get(team_id, phase_number)
        if existing:
            existing.data = dict(data)
            existing.updated_at = _utcnow()
            self.session.add(existing)
            self.session.commit()
            self.session.refresh(existing)
            return existing
        row = models.PhaseData(team_id=team_id, phase_number=phase_number, data=dict(data))
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def list_for_team(self, team_id: int) -> List[models.PhaseData]:
        stmt = select(models.PhaseData).where(models.PhaseData.team_id == team_id).order_by(models.PhaseData.phase_number)
        return self.session.exec(stmt).all()

    def mark_complete(self, row: models.PhaseData) -> models.PhaseData:
        now = _utcnow()
        row.completed_at = now
        row.updated_at = now
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def completed_counts(self) -> Dict[int, int]:
        """Map team id to the number of phases it marked complete."""
        stmt = select(models.PhaseData.team_id, func.count(models.PhaseData.id)).where(
            models.PhaseData.completed_at.is_not(None)
        ).group_by(models.PhaseData.team_id)
        return {team_id: count for team_id, count in self.session.exec(stmt).all()}


class CohortRepository:
    """CRUD operations for `Cohort` rows."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, cohort: models.Cohort) -> models.Cohort:
        self.session.add(cohort)
        self.session.commit()
        self.session.refresh(cohort)
        return cohort

    def save(self, cohort: models.Cohort) -> models.Cohort:
        cohort.updated_at = _utcnow()
        self.session.add(cohort)
        self.session.commit()
        self.session.refresh(cohort)
        return cohort

    def get_by_tag(self, tag: str) -> Optional[models.Cohort]:
        stmt = select(models.Cohort).where(models.Cohort.tag == tag)
        return self.session.exec(stmt).first()

    def list_all(self) -> List[models.Cohort]:
        stmt = select(models.Cohort).order_by(models.Cohort.created_at.desc(), models.Cohort.id.desc())
        return self.session.exec(stmt).all()


class VoteRepository:
    """Ballot persistence and vote queries."""
    def __init__(self, session: Session):
        self.session = session

    def create_ballot(self, votes: List[models.Vote]) -> List[models.Vote]:
        """Store all votes of one ballot in a single transaction.

        Raises `sqlalchemy.exc.IntegrityError` (after rolling back) if the
        team already has votes in the cohort.
        """
        try:
            for v in votes:
                self.session.add(v)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        for v in votes:
            self.session.refresh(v)
        return votes

    def list_by_team(self, cohort_tag: str, voting_team_id: int) -> List[models.Vote]:
        stmt = select(models.Vote).where(
            models.Vote.cohort_tag == cohort_tag,
            models.Vote.voting_team_id == voting_team_id,
        ).order_by(models.Vote.rank)
        return self.session.exec(stmt).all()

    def has_voted(self, cohort_tag: str, voting_team_id: int) -> bool:
        stmt = select(models.Vote.id).where(
            models.Vote.cohort_tag == cohort_tag,
            models.Vote.voting_team_id == voting_team_id,
        )
        return self.session.exec(stmt).first() is not None

    def list_by_cohort(self, cohort_tag: str) -> List[models.Vote]:
        stmt = select(models.Vote).where(models.Vote.cohort_tag == cohort_tag).order_by(
            models.Vote.voting_team_id, models.Vote.rank
        )
        return self.session.exec(stmt).all()

    def team_involved(self, cohort_tag: str, team_id: int) -> bool:
        """True if `team_id` cast or received any vote in the cohort."""
        stmt = select(models.Vote.id).where(
            models.Vote.cohort_tag == cohort_tag,
            (models.Vote.voting_team_id == team_id) | (models.Vote.voted_for_team_id == team_id),
        )
        return self.session.exec(stmt).first() is not None

    def cohorts_voted_in(self, team_id: int) -> List[str]:
        stmt = select(models.Vote.cohort_tag).where(models.Vote.voting_team_id == team_id).distinct()
        return list(self.session.exec(stmt).all())
