"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table; uniqueness rules that the workshop relies on
(team codes, access tokens, one ballot per team) are expressed as
database constraints so concurrent requests cannot bypass them.
"""

from typing import Optional, List
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON, UniqueConstraint
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A facilitator account.

    Fields:
    - `username`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: `admin` for facilitators, `user` otherwise
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    role: str = Field(default="user")
    created_at: datetime = Field(default_factory=_utcnow)


class Cohort(SQLModel, table=True):
    """A group of teams that share one showcase and one vote.

    `voting_open` and `results_visible` drive the staged reveal; the
    service layer keeps them mutually exclusive.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    tag: str = Field(index=True, nullable=False, unique=True)
    name: str
    description: Optional[str] = None
    voting_open: bool = False
    results_visible: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    teams: List['Team'] = Relationship(back_populates='cohort')


class Team(SQLModel, table=True):
    """A participant team working through the phases."""
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, nullable=False, unique=True)
    name: str
    access_token: str = Field(index=True, nullable=False, unique=True)
    current_phase: int = Field(default=1)
    avatar_icon: Optional[str] = None
    cohort_tag: Optional[str] = Field(default=None, foreign_key='cohort.tag', index=True)
    submitted_website_url: Optional[str] = None
    website_submitted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    cohort: Optional[Cohort] = Relationship(back_populates='teams')


class PhaseData(SQLModel, table=True):
    """Saved form answers of one team for one phase."""
    __tablename__ = 'phase_data'
    __table_args__ = (UniqueConstraint('team_id', 'phase_number', name='uq_phase_data_team_phase'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    team_id: int = Field(foreign_key='team.id', index=True)
    phase_number: int
    data: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Vote(SQLModel, table=True):
    """A single ranked vote; one ballot is up to three of these rows.

    The two unique constraints make a second ballot from the same team
    impossible at the database level.
    """
    __table_args__ = (
        UniqueConstraint('cohort_tag', 'voting_team_id', 'rank', name='uq_vote_rank'),
        UniqueConstraint('cohort_tag', 'voting_team_id', 'voted_for_team_id', name='uq_vote_target'),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    cohort_tag: str = Field(foreign_key='cohort.tag', index=True)
    voting_team_id: int = Field(foreign_key='team.id', index=True)
    voted_for_team_id: int = Field(foreign_key='team.id', index=True)
    rank: int
    created_at: datetime = Field(default_factory=_utcnow)
