"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the workshop backend.
Controllers are intentionally thin: they accept requests, check the
session, delegate to services, and return JSON responses.

Endpoint groups:
- /api/auth/...      admin and team login, logout, status
- /api/teams         team registration and self-service updates
- /api/phase-data    per-phase answers and rendered prompts
- /api/configs       phase form configs
- /api/cohorts, /api/showcase   public cohort state, showcase voting, results
- /api/admin/...     facilitator reporting and cohort management
- /health
"""

import json
import logging
import os
import time
import uuid
from contextlib import contextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import models, services
from .auth import (
    ADMIN_COOKIE,
    TEAM_COOKIE,
    clear_session_cookie,
    get_current_admin,
    get_current_team,
    get_optional_admin,
    get_optional_team,
    get_team_login_method,
    require_team_or_admin,
    require_token_login,
    set_session_cookie,
)
from .config import settings
from .database import create_db_and_tables, get_session
from .schemas import (
    AdminLoginIn,
    BallotIn,
    CohortCreate,
    CohortUpdate,
    PhaseDataIn,
    TeamAssignment,
    TeamAvatarUpdate,
    TeamCodeLoginIn,
    TeamCreate,
    TeamLoginIn,
    TeamPhaseUpdate,
    TeamWebsiteUpdate,
)
from .utils.phases import PhaseConfigError, load_phase_config
from .utils.rate_limit import InMemoryRateLimiter

app = FastAPI(title="Workshop Companion API")
logger = logging.getLogger("workshop.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
team_login_limiter = InMemoryRateLimiter(
    settings.TEAM_LOGIN_RATE_LIMIT_PER_MIN,
    settings.TEAM_LOGIN_RATE_LIMIT_WINDOW_SECONDS,
)

# Wide-open CORS keeps a locally served client working without extra config in dev.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        if request.url.path.startswith("/api"):
            logger.exception(
                "request_failed %s",
                json.dumps(
                    {
                        "request_id": req_id,
                        "path": request.url.path,
                        "method": request.method,
                        "duration_ms": elapsed_ms,
                        "client": request.client.host if request.client else "unknown",
                    },
                    ensure_ascii=True,
                ),
            )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    if request.url.path.startswith("/api"):
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = list(err.get("loc", ()))
        if loc and loc[0] == "body":
            loc = loc[1:]
        errors.append({"path": loc, "message": err.get("msg", ""), "type": err.get("type", "")})
    return JSONResponse(status_code=400, content={"message": "Invalid request data", "errors": errors})


@contextmanager
def service_errors():
    """Translate service exceptions into HTTP errors."""
    try:
        yield
    except (services.NotFoundError, PhaseConfigError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except services.ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except services.ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _enforce_team_login_rate_limit(request: Request) -> None:
    key = request.client.host if request.client else "unknown"
    allowed, retry_after = team_login_limiter.allow(key)
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"Too many login attempts; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )


def _user_out(user: models.User) -> dict:
    return {'id': user.id, 'username': user.username, 'role': user.role}


# --- auth -----------------------------------------------------------------

@app.post('/api/auth/admin/login')
def admin_login(payload: AdminLoginIn, response: Response, db: Session = Depends(get_session)):
    """Authenticate a facilitator and set the `admin_session` cookie.

    The signed token is also returned so scripts can send it as a bearer
    header instead of keeping cookies.
    """
    auth = services.AuthService(db)
    try:
        user = auth.authenticate_admin(payload.username, payload.password)
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except services.ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))
    token = auth.issue_admin_token(user)
    set_session_cookie(response, ADMIN_COOKIE, token)
    return {'message': 'Login successful', 'user': _user_out(user), 'access_token': token}


@app.post('/api/auth/admin/logout')
def admin_logout(response: Response):
    clear_session_cookie(response, ADMIN_COOKIE)
    return {'message': 'Logout successful'}


@app.get('/api/auth/admin/status')
def admin_status(admin: Optional[models.User] = Depends(get_optional_admin)):
    if admin is None:
        return {'authenticated': False, 'user': None}
    return {'authenticated': True, 'user': _user_out(admin)}


@app.post('/api/auth/team/login')
def team_login(payload: TeamLoginIn, request: Request, response: Response, db: Session = Depends(get_session)):
    """Log a team in with its secret access token."""
    _enforce_team_login_rate_limit(request)
    auth = services.AuthService(db)
    try:
        team = auth.authenticate_team(payload.access_token)
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e))
    set_session_cookie(response, TEAM_COOKIE, auth.issue_team_token(team))
    return {'message': 'Team login successful', 'team': services.team_to_dict(team)}


@app.post('/api/auth/team/login-code')
def team_login_code(payload: TeamCodeLoginIn, request: Request, response: Response, db: Session = Depends(get_session)):
    """Log a team in with its short team code."""
    _enforce_team_login_rate_limit(request)
    auth = services.AuthService(db)
    try:
        team = auth.authenticate_team_code(payload.code)
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e))
    set_session_cookie(response, TEAM_COOKIE, auth.issue_team_token(team, method='code'))
    return {'message': 'Team login successful', 'team': services.team_to_dict(team)}


@app.post('/api/auth/team/logout')
def team_logout(response: Response):
    clear_session_cookie(response, TEAM_COOKIE)
    return {'message': 'Team logout successful'}


@app.get('/api/auth/team/status')
def team_status(
    team: Optional[models.Team] = Depends(get_optional_team),
    method: Optional[str] = Depends(get_team_login_method),
):
    if team is None:
        return {'authenticated': False, 'team': None, 'login_method': None}
    return {'authenticated': True, 'team': services.team_to_dict(team), 'login_method': method}


# --- teams ----------------------------------------------------------------

@app.post('/api/teams', status_code=201)
def create_team(payload: TeamCreate, db: Session = Depends(get_session)):
    """Register a team.

    This is the only response that contains the team's access token.
    """
    with service_errors():
        team = services.TeamService(db).create_team(payload.name, payload.code)
    return services.team_to_dict(team, include_token=True)


@app.get('/api/teams')
def list_teams(db: Session = Depends(get_session)):
    return [services.team_to_dict(t) for t in services.TeamService(db).list_teams()]


@app.get('/api/teams/{code}')
def get_team(code: str, db: Session = Depends(get_session)):
    with service_errors():
        team = services.TeamService(db).get_by_code(code)
    return services.team_to_dict(team)


@app.patch('/api/teams/{team_id}/phase')
def update_team_phase(
    team_id: int,
    payload: TeamPhaseUpdate,
    db: Session = Depends(get_session),
    team: Optional[models.Team] = Depends(get_optional_team),
    admin: Optional[models.User] = Depends(get_optional_admin),
):
    require_team_or_admin(team_id, team, admin)
    with service_errors():
        updated = services.TeamService(db).update_phase(team_id, payload.current_phase)
    return services.team_to_dict(updated)


@app.patch('/api/teams/{team_id}/avatar')
def update_team_avatar(
    team_id: int,
    payload: TeamAvatarUpdate,
    db: Session = Depends(get_session),
    team: Optional[models.Team] = Depends(get_optional_team),
    admin: Optional[models.User] = Depends(get_optional_admin),
):
    require_team_or_admin(team_id, team, admin)
    with service_errors():
        updated = services.TeamService(db).update_avatar(team_id, payload.avatar_icon)
    return services.team_to_dict(updated)


@app.patch('/api/teams/{team_id}/website')
def submit_team_website(
    team_id: int,
    payload: TeamWebsiteUpdate,
    db: Session = Depends(get_session),
    team: Optional[models.Team] = Depends(get_optional_team),
    admin: Optional[models.User] = Depends(get_optional_admin),
    method: Optional[str] = Depends(get_team_login_method),
):
    """Submit, change or (with an empty string) withdraw the showcase website."""
    require_team_or_admin(team_id, team, admin)
    if admin is None:
        require_token_login(method)
    with service_errors():
        updated = services.TeamService(db).submit_website(team_id, payload.website_url)
    return services.team_to_dict(updated)


# --- phase data -----------------------------------------------------------

@app.post('/api/phase-data')
def save_phase_data(payload: PhaseDataIn, db: Session = Depends(get_session), team: models.Team = Depends(get_current_team)):
    """Upsert the answers of one phase for the logged-in team."""
    if team.id != payload.team_id:
        raise HTTPException(status_code=403, detail='Access denied')
    with service_errors():
        row = services.PhaseService(db).save(payload.team_id, payload.phase_number, payload.data)
    return services.phase_data_to_dict(row)


@app.get('/api/phase-data/{team_id}')
def list_phase_data(
    team_id: int,
    db: Session = Depends(get_session),
    team: Optional[models.Team] = Depends(get_optional_team),
    admin: Optional[models.User] = Depends(get_optional_admin),
):
    require_team_or_admin(team_id, team, admin)
    return [services.phase_data_to_dict(r) for r in services.PhaseService(db).list_for_team(team_id)]


@app.get('/api/phase-data/{team_id}/{phase_number}')
def get_phase_data(
    team_id: int,
    phase_number: int,
    db: Session = Depends(get_session),
    team: Optional[models.Team] = Depends(get_optional_team),
    admin: Optional[models.User] = Depends(get_optional_admin),
):
    require_team_or_admin(team_id, team, admin)
    with service_errors():
        row = services.PhaseService(db).get(team_id, phase_number)
    return services.phase_data_to_dict(row)


@app.patch('/api/phase-data/{team_id}/{phase_number}/complete')
def complete_phase(team_id: int, phase_number: int, db: Session = Depends(get_session), team: models.Team = Depends(get_current_team)):
    if team.id != team_id:
        raise HTTPException(status_code=403, detail='Access denied')
    with service_errors():
        row = services.PhaseService(db).mark_complete(team_id, phase_number)
    return services.phase_data_to_dict(row)


@app.get('/api/phase-data/{team_id}/{phase_number}/prompt')
def render_phase_prompt(
    team_id: int,
    phase_number: int,
    db: Session = Depends(get_session),
    team: Optional[models.Team] = Depends(get_optional_team),
    admin: Optional[models.User] = Depends(get_optional_admin),
):
    """Render the phase's prompt template with the team's saved answers.

    Unanswered placeholders stay in the text; `missing_fields` lists the
    required fields that are still empty.
    """
    require_team_or_admin(team_id, team, admin)
    with service_errors():
        return services.PhaseService(db).render_prompt(team_id, phase_number)


@app.get('/api/configs/phase-{phase_number}')
def get_phase_config(phase_number: int):
    with service_errors():
        return load_phase_config(phase_number)


# --- cohorts and showcase ---------------------------------------------------

@app.get('/api/cohorts/{tag}/status')
def cohort_status(tag: str, db: Session = Depends(get_session)):
    with service_errors():
        return services.CohortService(db).status(tag)


@app.get('/api/showcase/{tag}')
def list_showcase(tag: str, db: Session = Depends(get_session)):
    """Teams of the cohort that have submitted a website."""
    with service_errors():
        return services.VotingService(db).showcase(tag)


@app.post('/api/showcase/{tag}/vote', status_code=201)
def submit_ballot(
    tag: str,
    payload: BallotIn,
    db: Session = Depends(get_session),
    team: models.Team = Depends(get_current_team),
    method: Optional[str] = Depends(get_team_login_method),
):
    """Cast the logged-in team's ranked ballot for the cohort.

    Only sessions opened with the secret access token may vote.
    """
    require_token_login(method)
    votes = [{'voted_for_team_id': v.voted_for_team_id, 'rank': v.rank} for v in payload.votes]
    with service_errors():
        ballot = services.VotingService(db).submit_ballot(tag, team, votes)
    return {'message': 'Vote recorded', **ballot}


@app.get('/api/showcase/{tag}/vote')
def get_ballot(
    tag: str,
    team_id: Optional[int] = None,
    db: Session = Depends(get_session),
    team: Optional[models.Team] = Depends(get_optional_team),
    admin: Optional[models.User] = Depends(get_optional_admin),
):
    """The caller's ballot; admins may inspect any team's via `team_id`."""
    if admin is not None and team_id is not None:
        target = team_id
    elif team is not None:
        target = team.id
    elif admin is not None:
        raise HTTPException(status_code=400, detail='team_id is required')
    else:
        raise HTTPException(status_code=401, detail='Unauthorized - No team session')
    with service_errors():
        return services.VotingService(db).ballot(tag, target)


@app.get('/api/showcase/{tag}/results')
def showcase_results(tag: str, db: Session = Depends(get_session), admin: Optional[models.User] = Depends(get_optional_admin)):
    """Ranked results; public once revealed, admins may preview earlier."""
    with service_errors():
        return services.VotingService(db).results(tag, is_admin=admin is not None)


# --- admin ------------------------------------------------------------------

@app.get('/api/admin/teams')
def admin_list_teams(db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    return services.ExportService(db).teams_with_progress()


@app.get('/api/admin/export')
def admin_export(db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    content = services.ExportService(db).export_csv()
    return Response(
        content=content,
        media_type='text/csv',
        headers={'Content-Disposition': 'attachment; filename="teams-export.csv"'},
    )


@app.get('/api/admin/cohorts')
def admin_list_cohorts(db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    return [services.cohort_to_dict(c) for c in services.CohortService(db).list_cohorts()]


@app.post('/api/admin/cohorts', status_code=201)
def admin_create_cohort(payload: CohortCreate, db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    with service_errors():
        cohort = services.CohortService(db).create(payload.tag, payload.name, payload.description)
    return services.cohort_to_dict(cohort)


@app.get('/api/admin/cohorts/{tag}')
def admin_get_cohort(tag: str, db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    svc = services.CohortService(db)
    with service_errors():
        cohort = svc.get(tag)
    out = services.cohort_to_dict(cohort)
    out['teams'] = [services.team_to_dict(t) for t in svc.team_repo.list_by_cohort(tag)]
    return out


@app.patch('/api/admin/cohorts/{tag}')
def admin_update_cohort(tag: str, payload: CohortUpdate, db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    """Rename a cohort or move it through voting / results reveal."""
    with service_errors():
        cohort = services.CohortService(db).update(tag, payload.model_dump(exclude_unset=True))
    return services.cohort_to_dict(cohort)


@app.post('/api/admin/cohorts/{tag}/teams')
def admin_assign_teams(tag: str, payload: TeamAssignment, db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    with service_errors():
        teams = services.CohortService(db).assign_teams(tag, payload.team_ids)
    return {'cohort_tag': tag, 'teams': [services.team_to_dict(t) for t in teams]}


@app.delete('/api/admin/cohorts/{tag}/teams/{team_id}')
def admin_remove_team(tag: str, team_id: int, db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    with service_errors():
        team = services.CohortService(db).remove_team(tag, team_id)
    return {'message': 'Team removed from cohort', 'team': services.team_to_dict(team)}


@app.get('/api/admin/cohorts/{tag}/votes')
def admin_ballot_audit(tag: str, db: Session = Depends(get_session), admin: models.User = Depends(get_current_admin)):
    with service_errors():
        return services.VotingService(db).audit(tag)


@app.get("/", response_class=HTMLResponse)
def home():
    """Minimal homepage for quick manual testing."""
    return """
    <!DOCTYPE html>
    <html>
    <head>
      <meta charset="UTF-8" />
      <title>Workshop Companion API</title>
      <style>
        body { font-family: Arial, sans-serif; margin: 32px; }
        a { color: #0a6; }
        .card { max-width: 640px; padding: 16px; border: 1px solid #ddd; border-radius: 8px; }
      </style>
    </head>
    <body>
      <div class="card">
        <h1>Workshop Companion API</h1>
        <p>Quick links for local testing:</p>
        <ul>
          <li><a href="/docs">Swagger UI</a></li>
          <li><a href="/health">Health check</a></li>
        </ul>
        <p>Create a team with <code>POST /api/teams</code>, then log in with its access token at <code>/api/auth/team/login</code>.</p>
      </div>
    </body>
    </html>
    """


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
