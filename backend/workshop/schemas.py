"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable and reject malformed payloads before
they reach the services; failures surface as 400 `Invalid request data`.
"""

import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, Field, field_validator

from .utils.phases import MAX_PHASE, MIN_PHASE

TEAM_CODE_RE = re.compile(r'^[A-Z0-9_-]{2,20}$')
COHORT_TAG_RE = re.compile(r'^[A-Za-z0-9_-]{2,50}$')
TEAM_NAME_MAX_LENGTH = 100


class AdminLoginIn(BaseModel):
    """Payload for facilitator login; missing fields fail authentication, not validation."""
    username: str = ''
    password: str = ''


class TeamLoginIn(BaseModel):
    """Team login with the secret access token."""
    access_token: str = Field(min_length=1)


class TeamCodeLoginIn(BaseModel):
    """Team login with the short team code."""
    code: str = Field(min_length=1)


class TeamCreate(BaseModel):
    name: str
    code: Optional[str] = None

    @field_validator('name')
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('name must not be blank')
        if len(v) > TEAM_NAME_MAX_LENGTH:
            raise ValueError(f'name must be at most {TEAM_NAME_MAX_LENGTH} characters')
        return v

    @field_validator('code')
    @classmethod
    def _normalize_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().upper()
        if not TEAM_CODE_RE.match(v):
            raise ValueError('code must be 2-20 characters of A-Z, 0-9, _ or -')
        return v


class TeamPhaseUpdate(BaseModel):
    current_phase: int = Field(ge=MIN_PHASE, le=MAX_PHASE)


class TeamAvatarUpdate(BaseModel):
    avatar_icon: str = Field(max_length=200)

    @field_validator('avatar_icon')
    @classmethod
    def _strip_icon(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('avatar_icon must not be blank')
        return v


class TeamWebsiteUpdate(BaseModel):
    """Website submission; an empty string withdraws the submission."""
    website_url: str = Field(max_length=2048)

    @field_validator('website_url')
    @classmethod
    def _check_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            return ''
        parsed = urlparse(v)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ValueError('website_url must be an http(s) URL')
        return v


class PhaseDataIn(BaseModel):
    team_id: int
    phase_number: int = Field(ge=MIN_PHASE, le=MAX_PHASE)
    data: Dict[str, Any]


class CohortCreate(BaseModel):
    tag: str
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None

    @field_validator('tag')
    @classmethod
    def _check_tag(cls, v: str) -> str:
        v = v.strip()
        if not COHORT_TAG_RE.match(v):
            raise ValueError('tag must be 2-50 characters of letters, digits, _ or -')
        return v


class CohortUpdate(BaseModel):
    """Partial cohort update; only fields present in the body are applied."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    voting_open: Optional[bool] = Field(default=None, validation_alias=AliasChoices('voting_open', 'votingOpen'))
    results_visible: Optional[bool] = Field(default=None, validation_alias=AliasChoices('results_visible', 'resultsVisible'))


class TeamAssignment(BaseModel):
    team_ids: List[int] = Field(min_length=1)


class VoteIn(BaseModel):
    """One ranked choice of a ballot."""
    voted_for_team_id: int = Field(validation_alias=AliasChoices('voted_for_team_id', 'teamId', 'team_id'))
    rank: int = Field(ge=1, le=3)


class BallotIn(BaseModel):
    """A team's full ballot: up to three ranked choices."""
    votes: List[VoteIn] = Field(min_length=1, max_length=3)
