"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and domain rules. Services are intentionally thin except for the
showcase vote: `VotingService` owns every ballot integrity rule and the
results aggregation, and `CohortService` owns the staged voting/results
visibility of a cohort.

Services raise `NotFoundError`, `ConflictError`, `ForbiddenError` or
`ValueError`; controllers translate them to HTTP status codes.
"""

import csv
import hashlib
import io
import json
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .utils.avatars import RECENT_AVATAR_WINDOW, select_random_avatar
from .utils.phases import load_phase_config, phase_title, progress_percentage
from .utils.templates import compile_template, extract_variables, missing_required_fields

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

TEAM_CODE_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'
TEAM_CODE_LENGTH = 4
MAX_BALLOT_SIZE = 3
RANK_POINTS = {1: 3, 2: 2, 3: 1}

voting_logger = logging.getLogger("workshop.voting")
auth_logger = logging.getLogger("workshop.auth")


class NotFoundError(LookupError):
    """A referenced team, cohort or phase record does not exist."""


class ConflictError(Exception):
    """The request clashes with existing state (duplicate code, locked data)."""


class ForbiddenError(Exception):
    """The caller is authenticated but not allowed to do this right now."""


def _log_event(logger: logging.Logger, name: str, payload: dict) -> None:
    logger.info("%s %s", name, json.dumps(payload, ensure_ascii=True, default=str))


def team_to_dict(team: models.Team, include_token: bool = False) -> dict:
    """Public representation of a team; the access token only on request."""
    out = {
        'id': team.id,
        'code': team.code,
        'name': team.name,
        'current_phase': team.current_phase,
        'avatar_icon': team.avatar_icon,
        'cohort_tag': team.cohort_tag,
        'submitted_website_url': team.submitted_website_url,
        'website_submitted_at': team.website_submitted_at,
        'created_at': team.created_at,
        'updated_at': team.updated_at,
    }
    if include_token:
        out['access_token'] = team.access_token
    return out


def phase_data_to_dict(row: models.PhaseData) -> dict:
    return {
        'id': row.id,
        'team_id': row.team_id,
        'phase_number': row.phase_number,
        'data': row.data,
        'completed_at': row.completed_at,
        'created_at': row.created_at,
        'updated_at': row.updated_at,
    }


def cohort_to_dict(cohort: models.Cohort) -> dict:
    return {
        'id': cohort.id,
        'tag': cohort.tag,
        'name': cohort.name,
        'description': cohort.description,
        'voting_open': cohort.voting_open,
        'results_visible': cohort.results_visible,
        'created_at': cohort.created_at,
        'updated_at': cohort.updated_at,
    }


def generate_access_token() -> str:
    return secrets.token_hex(16).upper()


def generate_team_code() -> str:
    return ''.join(secrets.choice(TEAM_CODE_ALPHABET) for _ in range(TEAM_CODE_LENGTH))


def token_fingerprint(access_token: str) -> str:
    """Short digest tying a team session to the access token it was issued for."""
    return hashlib.sha256(access_token.encode('utf-8')).hexdigest()[:16]


class AuthService:
    """Facilitator accounts, team logins and session token issuing."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.team_repo = repositories.TeamRepository(session)

    def register(self, username: str, password: str, role: str = 'admin') -> models.User:
        """Create a new user with a hashed password.

        Returns the persisted `User` instance.
        """
        if self.user_repo.get_by_username(username):
            raise ConflictError('Username already exists')
        hashed = PWD_CTX.hash(password)
        u = models.User(username=username, password_hash=hashed, role=role)
        return self.user_repo.create(u)

    def authenticate_admin(self, username: str, password: str) -> models.User:
        """Verify facilitator credentials.

        Raises `ValueError` for unknown users or wrong passwords and
        `ForbiddenError` when the account is not an admin.
        """
        user = self.user_repo.get_by_username(username) if username else None
        if not user or not password or not PWD_CTX.verify(password, user.password_hash):
            _log_event(auth_logger, 'admin_login_failed', {'username': username})
            raise ValueError('Invalid username or password')
        if user.role != 'admin':
            _log_event(auth_logger, 'admin_login_denied', {'username': username})
            raise ForbiddenError('Access denied')
        _log_event(auth_logger, 'admin_login', {'user_id': user.id})
        return user

    def authenticate_team(self, access_token: str) -> models.Team:
        team = self.team_repo.get_by_access_token(access_token.strip())
        if not team:
            _log_event(auth_logger, 'team_login_failed', {'method': 'token'})
            raise ValueError('Invalid access token')
        _log_event(auth_logger, 'team_login', {'team_id': team.id, 'method': 'token'})
        return team

    def authenticate_team_code(self, code: str) -> models.Team:
        team = self.team_repo.get_by_code(code.strip())
        if not team:
            _log_event(auth_logger, 'team_login_failed', {'method': 'code'})
            raise ValueError('Invalid team code')
        _log_event(auth_logger, 'team_login', {'team_id': team.id, 'method': 'code'})
        return team

    @staticmethod
    def issue_admin_token(user: models.User) -> str:
        return AuthService._issue('admin', user.id, {'username': user.username, 'role': user.role})

    @staticmethod
    def issue_team_token(team: models.Team, method: str = 'token') -> str:
        """Sign a team session; `method` records whether the access token or the public code was used."""
        return AuthService._issue('team', team.id, {'atk': token_fingerprint(team.access_token), 'method': method})

    @staticmethod
    def _issue(kind: str, subject_id: int, extra: dict) -> str:
        expire = datetime.now(timezone.utc) + timedelta(hours=settings.SESSION_MAX_AGE_HOURS)
        payload = {'kind': kind, 'sub': str(subject_id), 'exp': int(expire.timestamp()), **extra}
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class TeamService:
    """Team creation and the per-team fields teams edit themselves."""
    def __init__(self, session: Session):
        self.session = session
        self.team_repo = repositories.TeamRepository(session)
        self.cohort_repo = repositories.CohortRepository(session)

    def create_team(self, name: str, code: Optional[str] = None) -> models.Team:
        """Create a team with a fresh access token and avatar.

        When `code` is omitted a 4-character code is generated; an explicit
        code that is already taken raises `ConflictError`.
        """
        if code is None:
            code = self._unused_code()
        elif self.team_repo.code_exists(code):
            raise ConflictError('Team code already exists')
        avatar = select_random_avatar(self.team_repo.recent_avatars(RECENT_AVATAR_WINDOW))
        team = models.Team(
            name=name,
            code=code.upper(),
            access_token=generate_access_token(),
            avatar_icon=avatar,
            current_phase=1,
        )
        try:
            return self.team_repo.create(team)
        except IntegrityError:
            self.session.rollback()
            raise ConflictError('Team code already exists')

    def _unused_code(self, attempts: int = 20) -> str:
        for _ in range(attempts):
            code = generate_team_code()
            if not self.team_repo.code_exists(code):
                return code
        raise ConflictError('Could not generate a unique team code')

    def get_by_code(self, code: str) -> models.Team:
        team = self.team_repo.get_by_code(code)
        if not team:
            raise NotFoundError('Team not found')
        return team

    def get(self, team_id: int) -> models.Team:
        team = self.team_repo.get(team_id)
        if not team:
            raise NotFoundError('Team not found')
        return team

    def list_teams(self) -> List[models.Team]:
        return self.team_repo.list_all()

    def update_phase(self, team_id: int, current_phase: int) -> models.Team:
        team = self.get(team_id)
        team.current_phase = current_phase
        return self.team_repo.save(team)

    def update_avatar(self, team_id: int, avatar_icon: str) -> models.Team:
        team = self.get(team_id)
        team.avatar_icon = avatar_icon.strip()
        return self.team_repo.save(team)

    def submit_website(self, team_id: int, website_url: str) -> models.Team:
        """Set (or with `""` withdraw) the team's showcase website.

        While the team's cohort has voting open an existing submission is
        frozen: a first submission is still accepted so late teams can
        vote, but changing or withdrawing one is refused.
        """
        team = self.get(team_id)
        if team.submitted_website_url and team.cohort_tag:
            cohort = self.cohort_repo.get_by_tag(team.cohort_tag)
            if cohort and cohort.voting_open and website_url != team.submitted_website_url:
                raise ConflictError('Website submissions are locked while voting is open')
        if website_url:
            team.submitted_website_url = website_url
            team.website_submitted_at = datetime.now(timezone.utc)
        else:
            team.submitted_website_url = None
            team.website_submitted_at = None
        return self.team_repo.save(team)


class PhaseService:
    """Phase answers and the prompts they render into."""
    def __init__(self, session: Session):
        self.session = session
        self.phase_repo = repositories.PhaseDataRepository(session)
        self.team_repo = repositories.TeamRepository(session)

    def _require_team(self, team_id: int) -> models.Team:
        team = self.team_repo.get(team_id)
        if not team:
            raise NotFoundError('Team not found')
        return team

    def save(self, team_id: int, phase_number: int, data: dict) -> models.PhaseData:
        self._require_team(team_id)
        return self.phase_repo.upsert(team_id, phase_number, data)

    def get(self, team_id: int, phase_number: int) -> models.PhaseData:
        row = self.phase_repo.get(team_id, phase_number)
        if not row:
            raise NotFoundError('Phase data not found')
        return row

    def list_for_team(self, team_id: int) -> List[models.PhaseData]:
        return self.phase_repo.list_for_team(team_id)

    def mark_complete(self, team_id: int, phase_number: int) -> models.PhaseData:
        return self.phase_repo.mark_complete(self.get(team_id, phase_number))

    def build_template_context(self, team_id: int, phase_number: int) -> dict:
        """Current phase answers at top level plus `phaseN` objects for every saved phase."""
        rows = self.phase_repo.list_for_team(team_id)
        context: Dict[str, object] = {}
        for row in rows:
            if isinstance(row.data, dict):
                context[f'phase{row.phase_number}'] = dict(row.data)
        current = next((r for r in rows if r.phase_number == phase_number), None)
        if current and isinstance(current.data, dict):
            context.update(current.data)
        return context

    def render_prompt(self, team_id: int, phase_number: int) -> dict:
        """Render the phase's prompt template with the team's saved answers."""
        self._require_team(team_id)
        config = load_phase_config(phase_number)
        template = config.get('promptTemplate', '')
        context = self.build_template_context(team_id, phase_number)
        current = self.phase_repo.get(team_id, phase_number)
        return {
            'team_id': team_id,
            'phase_number': phase_number,
            'title': config.get('title') or phase_title(phase_number),
            'prompt': compile_template(template, context),
            'variables': extract_variables(template),
            'missing_fields': missing_required_fields(config, current.data if current else {}),
        }


class CohortService:
    """Cohort management and the staged voting → results reveal."""
    def __init__(self, session: Session):
        self.session = session
        self.cohort_repo = repositories.CohortRepository(session)
        self.team_repo = repositories.TeamRepository(session)
        self.vote_repo = repositories.VoteRepository(session)

    def create(self, tag: str, name: str, description: Optional[str] = None) -> models.Cohort:
        if self.cohort_repo.get_by_tag(tag):
            raise ConflictError('Cohort tag already exists')
        cohort = models.Cohort(tag=tag, name=name.strip(), description=description)
        try:
            cohort = self.cohort_repo.create(cohort)
        except IntegrityError:
            self.session.rollback()
            raise ConflictError('Cohort tag already exists')
        _log_event(voting_logger, 'cohort_created', {'cohort': tag})
        return cohort

    def get(self, tag: str) -> models.Cohort:
        cohort = self.cohort_repo.get_by_tag(tag)
        if not cohort:
            raise NotFoundError('Cohort not found')
        return cohort

    def list_cohorts(self) -> List[models.Cohort]:
        return self.cohort_repo.list_all()

    def update(self, tag: str, changes: dict) -> models.Cohort:
        """Apply a partial update.

        `voting_open` and `results_visible` are mutually exclusive: opening
        voting hides results and revealing results closes voting. Asking
        for both at once is rejected.
        """
        cohort = self.get(tag)
        open_voting = changes.get('voting_open')
        show_results = changes.get('results_visible')
        if open_voting and show_results:
            raise ValueError('Voting cannot be open while results are visible')
        before = {'voting_open': cohort.voting_open, 'results_visible': cohort.results_visible}
        if changes.get('name') is not None:
            cohort.name = changes['name'].strip()
        if 'description' in changes:
            cohort.description = changes['description']
        if open_voting is not None:
            cohort.voting_open = open_voting
            if open_voting:
                cohort.results_visible = False
        if show_results is not None:
            cohort.results_visible = show_results
            if show_results:
                cohort.voting_open = False
        cohort = self.cohort_repo.save(cohort)
        after = {'voting_open': cohort.voting_open, 'results_visible': cohort.results_visible}
        if after != before:
            _log_event(voting_logger, 'cohort_state_changed', {'cohort': tag, 'before': before, 'after': after})
        return cohort

    def assign_teams(self, tag: str, team_ids: List[int]) -> List[models.Team]:
        """Move teams into the cohort.

        A team that already cast a ballot in a different cohort stays put
        so its vote cannot be duplicated elsewhere.
        """
        self.get(tag)
        wanted = list(dict.fromkeys(team_ids))
        teams = self.team_repo.list_by_ids(wanted)
        found = {t.id for t in teams}
        missing = [tid for tid in wanted if tid not in found]
        if missing:
            raise NotFoundError(f'Teams not found: {missing}')
        for team in teams:
            other_votes = [c for c in self.vote_repo.cohorts_voted_in(team.id) if c != tag]
            if other_votes:
                raise ConflictError(f'Team {team.id} has already voted in cohort {other_votes[0]}')
        assigned = []
        for team in teams:
            if team.cohort_tag != tag:
                team.cohort_tag = tag
                team = self.team_repo.save(team)
            assigned.append(team)
        _log_event(voting_logger, 'cohort_teams_assigned', {'cohort': tag, 'team_ids': wanted})
        return assigned

    def remove_team(self, tag: str, team_id: int) -> models.Team:
        self.get(tag)
        team = self.team_repo.get(team_id)
        if not team or team.cohort_tag != tag:
            raise NotFoundError('Team is not in this cohort')
        if self.vote_repo.team_involved(tag, team_id):
            raise ConflictError('Team has ballots in this cohort and cannot be removed')
        team.cohort_tag = None
        team = self.team_repo.save(team)
        _log_event(voting_logger, 'cohort_team_removed', {'cohort': tag, 'team_id': team_id})
        return team

    def status(self, tag: str) -> dict:
        """Public snapshot of a cohort's showcase state."""
        cohort = self.get(tag)
        teams = self.team_repo.list_by_cohort(tag)
        return {
            'tag': cohort.tag,
            'name': cohort.name,
            'description': cohort.description,
            'voting_open': cohort.voting_open,
            'results_visible': cohort.results_visible,
            'team_count': len(teams),
            'submitted_count': sum(1 for t in teams if t.submitted_website_url),
        }


class VotingService:
    """Showcase listing, ballot submission and results aggregation.

    Ballot rules, checked in this order:
    - voting must be open for the cohort
    - the voting team belongs to the cohort and has submitted its website
    - one ballot per team per cohort
    - no vote for the voting team itself
    - distinct target teams, ranks distinct and contiguous from 1
    - every target is a cohort team with a submitted website
    - the ballot ranks `min(3, eligible teams)` teams
    A ballot is stored in a single transaction; the unique constraints on
    `Vote` turn a concurrent second ballot into the "already voted" error.
    """
    def __init__(self, session: Session):
        self.session = session
        self.cohort_repo = repositories.CohortRepository(session)
        self.team_repo = repositories.TeamRepository(session)
        self.vote_repo = repositories.VoteRepository(session)

    def _require_cohort(self, tag: str) -> models.Cohort:
        cohort = self.cohort_repo.get_by_tag(tag)
        if not cohort:
            raise NotFoundError('Cohort not found')
        return cohort

    def showcase(self, tag: str) -> List[dict]:
        self._require_cohort(tag)
        return [
            {
                'id': t.id,
                'name': t.name,
                'code': t.code,
                'avatar_icon': t.avatar_icon,
                'submitted_website_url': t.submitted_website_url,
                'website_submitted_at': t.website_submitted_at,
            }
            for t in self.team_repo.list_submitted_in_cohort(tag)
        ]

    def _reject(self, exc: Exception, tag: str, team_id: int) -> Exception:
        _log_event(voting_logger, 'ballot_rejected', {'cohort': tag, 'team_id': team_id, 'reason': str(exc)})
        return exc

    def submit_ballot(self, tag: str, voting_team: models.Team, votes: List[dict]) -> dict:
        """Validate and store a ballot of `{voted_for_team_id, rank}` items."""
        cohort = self._require_cohort(tag)
        team_id = voting_team.id
        if not cohort.voting_open:
            raise self._reject(ForbiddenError('Voting is not open for this cohort'), tag, team_id)
        if voting_team.cohort_tag != cohort.tag:
            raise self._reject(ForbiddenError('Your team is not part of this cohort'), tag, team_id)
        if not voting_team.submitted_website_url:
            raise self._reject(ForbiddenError("Submit your team's website before voting"), tag, team_id)
        if self.vote_repo.has_voted(tag, team_id):
            raise self._reject(ValueError('Your team has already voted in this cohort'), tag, team_id)

        targets = [v['voted_for_team_id'] for v in votes]
        ranks = [v['rank'] for v in votes]
        if team_id in targets:
            raise self._reject(ValueError('Cannot vote for your own team'), tag, team_id)
        if len(set(targets)) != len(targets):
            raise self._reject(ValueError('Each team can receive only one of your votes'), tag, team_id)
        if sorted(ranks) != list(range(1, len(ranks) + 1)):
            raise self._reject(ValueError('Ranks must be distinct and start at 1'), tag, team_id)

        eligible = {t.id for t in self.team_repo.list_submitted_in_cohort(tag) if t.id != team_id}
        unknown = [t for t in targets if t not in eligible]
        if unknown:
            raise self._reject(ValueError(f'Team {unknown[0]} is not an eligible showcase entry'), tag, team_id)
        required = min(MAX_BALLOT_SIZE, len(eligible))
        if len(votes) != required:
            raise self._reject(ValueError(f'Your ballot must rank exactly {required} teams'), tag, team_id)

        rows = [
            models.Vote(cohort_tag=tag, voting_team_id=team_id, voted_for_team_id=v['voted_for_team_id'], rank=v['rank'])
            for v in sorted(votes, key=lambda v: v['rank'])
        ]
        try:
            self.vote_repo.create_ballot(rows)
        except IntegrityError:
            raise self._reject(ValueError('Your team has already voted in this cohort'), tag, team_id)
        _log_event(voting_logger, 'ballot_accepted', {
            'cohort': tag,
            'team_id': team_id,
            'votes': [{'rank': r.rank, 'voted_for_team_id': r.voted_for_team_id} for r in rows],
        })
        return self.ballot(tag, team_id)

    def ballot(self, tag: str, team_id: int) -> dict:
        """The stored ballot of `team_id` in cohort `tag`."""
        self._require_cohort(tag)
        votes = self.vote_repo.list_by_team(tag, team_id)
        names = self._team_names([v.voted_for_team_id for v in votes])
        return {
            'cohort_tag': tag,
            'team_id': team_id,
            'has_voted': bool(votes),
            'votes': [
                {
                    'rank': v.rank,
                    'voted_for_team_id': v.voted_for_team_id,
                    'voted_for_team_name': names.get(v.voted_for_team_id),
                    'created_at': v.created_at,
                }
                for v in votes
            ],
        }

    def _team_names(self, team_ids: List[int]) -> Dict[int, str]:
        if not team_ids:
            return {}
        return {t.id: t.name for t in self.team_repo.list_by_ids(list(set(team_ids)))}

    def results(self, tag: str, is_admin: bool = False) -> dict:
        """Aggregate the cohort's ballots into a ranking.

        Hidden from non-admins until the cohort's results are visible.
        Points per vote follow `RANK_POINTS`; ties on points are broken by
        the number of first, then second, then third places. Entries that
        tie on all of these share a position.
        """
        cohort = self._require_cohort(tag)
        if not cohort.results_visible and not is_admin:
            raise ForbiddenError('Results are not yet available')
        votes = self.vote_repo.list_by_cohort(tag)
        tally: Dict[int, Dict[int, int]] = {}
        for v in votes:
            counts = tally.setdefault(v.voted_for_team_id, {1: 0, 2: 0, 3: 0})
            counts[v.rank] = counts.get(v.rank, 0) + 1
        teams = {t.id: t for t in self.team_repo.list_by_ids(list(tally))} if tally else {}

        entries = []
        for tid, counts in tally.items():
            team = teams.get(tid)
            entries.append({
                'team_id': tid,
                'team_name': team.name if team else None,
                'avatar_icon': team.avatar_icon if team else None,
                'submitted_website_url': team.submitted_website_url if team else None,
                'total_points': sum(RANK_POINTS[r] * c for r, c in counts.items()),
                'votes': [{'rank': r, 'count': counts[r]} for r in sorted(counts)],
            })

        def score_key(e):
            counts = {item['rank']: item['count'] for item in e['votes']}
            return (e['total_points'], counts.get(1, 0), counts.get(2, 0), counts.get(3, 0))

        entries.sort(key=lambda e: (tuple(-x for x in score_key(e)), (e['team_name'] or '').lower(), e['team_id']))
        previous_key = None
        for idx, entry in enumerate(entries, start=1):
            key = score_key(entry)
            entry['position'] = idx if key != previous_key else entries[idx - 2]['position']
            previous_key = key

        return {
            'cohort_tag': tag,
            'cohort_name': cohort.name,
            'results_visible': cohort.results_visible,
            'total_ballots': len({v.voting_team_id for v in votes}),
            'results': entries,
            'podium': [e for e in entries if e['position'] <= 3],
        }

    def audit(self, tag: str) -> dict:
        """Facilitator view: who voted, who received votes, every ballot."""
        cohort = self._require_cohort(tag)
        teams = self.team_repo.list_by_cohort(tag)
        votes = self.vote_repo.list_by_cohort(tag)
        names = {t.id: t.name for t in teams}
        names.update(self._team_names([tid for v in votes for tid in (v.voting_team_id, v.voted_for_team_id) if tid not in names]))
        ballots: Dict[int, List[models.Vote]] = {}
        received: Dict[int, int] = {}
        for v in votes:
            ballots.setdefault(v.voting_team_id, []).append(v)
            received[v.voted_for_team_id] = received.get(v.voted_for_team_id, 0) + 1
        return {
            'cohort_tag': tag,
            'voting_open': cohort.voting_open,
            'results_visible': cohort.results_visible,
            'total_ballots': len(ballots),
            'teams': [
                {
                    'team_id': t.id,
                    'team_name': t.name,
                    'has_submitted_website': bool(t.submitted_website_url),
                    'has_voted': t.id in ballots,
                    'votes_received': received.get(t.id, 0),
                }
                for t in teams
            ],
            'ballots': [
                {
                    'voting_team_id': voter_id,
                    'voting_team_name': names.get(voter_id),
                    'submitted_at': min(v.created_at for v in rows),
                    'votes': [
                        {'rank': v.rank, 'voted_for_team_id': v.voted_for_team_id, 'voted_for_team_name': names.get(v.voted_for_team_id)}
                        for v in rows
                    ],
                }
                for voter_id, rows in ballots.items()
            ],
        }


class ExportService:
    """Facilitator reporting: progress table and CSV export."""
    CSV_HEADER = ['Team Code', 'Team Name', 'Cohort', 'Current Phase', 'Website', 'Created At', 'Updated At']

    def __init__(self, session: Session):
        self.session = session
        self.team_repo = repositories.TeamRepository(session)
        self.phase_repo = repositories.PhaseDataRepository(session)

    def teams_with_progress(self) -> List[dict]:
        completed = self.phase_repo.completed_counts()
        out = []
        for team in self.team_repo.list_all():
            item = team_to_dict(team)
            item['phase_title'] = phase_title(team.current_phase)
            item['completed_phases'] = completed.get(team.id, 0)
            item['progress_percentage'] = progress_percentage(team.current_phase)
            out.append(item)
        return out

    def export_csv(self) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator='\n')
        writer.writerow(self.CSV_HEADER)
        for team in self.team_repo.list_all():
            writer.writerow([
                team.code,
                team.name,
                team.cohort_tag or '',
                team.current_phase,
                team.submitted_website_url or '',
                team.created_at.isoformat() if team.created_at else '',
                team.updated_at.isoformat() if team.updated_at else '',
            ])
        return buf.getvalue()
