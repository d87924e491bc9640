"""
api/routes/v1/teams.py -- Team hierarchy REST endpoints.

Routes:
  GET   /api/v1/teams/root                         -- the root team
  GET   /api/v1/teams/tree?root_team_id=           -- nested tree (default: from root)
  GET   /api/v1/teams/common-ancestor?team_a=&team_b=
  GET   /api/v1/teams/{team_id}/ancestors          -- parent first, root last
  GET   /api/v1/teams/{team_id}/descendants        -- breadth-first
  GET   /api/v1/teams/{team_id}/children
  GET   /api/v1/teams/{team_id}/path               -- root first
  GET   /api/v1/teams/{team_id}/access             -- may the caller access this team?
  POST  /api/v1/teams                              -- create a team (admin)
  PATCH /api/v1/teams/{team_id}                    -- rename / move a team (admin)

Every route needs a session. Per-team reads additionally require that the
caller may access the team (own team or an ancestor of it); admins skip that
check. Writes invalidate the hierarchy snapshot cache.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from api.models import AccessResponse, TeamCreate, TeamPatch, TeamResponse
from auth.dependencies import get_current_session, require_admin, require_csrf
from auth.models import Session
from core.errors import NoRootError, NotFoundError
from teams.hierarchy import TeamHierarchy
from teams.models import Team
from teams.store import TeamStore

router = APIRouter()


def get_hierarchy(request: Request) -> TeamHierarchy:
    return request.app.state.hierarchy


def _ensure_access(hierarchy: TeamHierarchy, session: Session, team_id: str) -> None:
    """403 unless the caller is an admin or team_id is their team or one of its ancestors."""
    user = session.user
    if user.role == "admin":
        return
    if not hierarchy.can_user_access_team(user.team_id, team_id):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "You do not have access to this team."},
        )


def _require_team(hierarchy: TeamHierarchy, team_id: str) -> Team:
    team = hierarchy.store.get_team(team_id)
    if team is None:
        raise NotFoundError(f"Team with ID {team_id} not found")
    return team


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/teams/root", response_model=TeamResponse)
def get_root(
    session: Session = Depends(get_current_session),
    hierarchy: TeamHierarchy = Depends(get_hierarchy),
) -> TeamResponse:
    root = hierarchy.root()
    if root is None:
        raise NoRootError()
    return TeamResponse.from_team(root)


@router.get("/teams/tree", response_model=TeamResponse)
def get_tree(
    root_team_id: Optional[str] = Query(default=None, max_length=64),
    session: Session = Depends(get_current_session),
    hierarchy: TeamHierarchy = Depends(get_hierarchy),
) -> TeamResponse:
    """Nested tree with depths relative to the starting team."""
    if root_team_id is not None:
        _ensure_access(hierarchy, session, root_team_id)
    return TeamResponse.from_team(hierarchy.build_tree(root_team_id))


@router.get("/teams/common-ancestor", response_model=Optional[TeamResponse])
def get_common_ancestor(
    team_a: str = Query(max_length=64),
    team_b: str = Query(max_length=64),
    session: Session = Depends(get_current_session),
    hierarchy: TeamHierarchy = Depends(get_hierarchy),
) -> Optional[TeamResponse]:
    """Lowest common ancestor of two teams; null when they share none."""
    _ensure_access(hierarchy, session, team_a)
    _ensure_access(hierarchy, session, team_b)
    ancestor = hierarchy.common_ancestor(team_a, team_b)
    return TeamResponse.from_team(ancestor) if ancestor is not None else None


@router.get("/teams/{team_id}/ancestors", response_model=list[TeamResponse])
def get_ancestors(
    team_id: str,
    session: Session = Depends(get_current_session),
    hierarchy: TeamHierarchy = Depends(get_hierarchy),
) -> list[TeamResponse]:
    _ensure_access(hierarchy, session, team_id)
    _require_team(hierarchy, team_id)
    return [TeamResponse.from_team(t) for t in hierarchy.ancestors(team_id)]


@router.get("/teams/{team_id}/descendants", response_model=list[TeamResponse])
def get_descendants(
    team_id: str,
    session: Session = Depends(get_current_session),
    hierarchy: TeamHierarchy = Depends(get_hierarchy),
) -> list[TeamResponse]:
    _ensure_access(hierarchy, session, team_id)
    _require_team(hierarchy, team_id)
    return [TeamResponse.from_team(t) for t in hierarchy.descendants(team_id)]


@router.get("/teams/{team_id}/children", response_model=list[TeamResponse])
def get_children(
    team_id: str,
    session: Session = Depends(get_current_session),
    hierarchy: TeamHierarchy = Depends(get_hierarchy),
) -> list[TeamResponse]:
    _ensure_access(hierarchy, session, team_id)
    _require_team(hierarchy, team_id)
    return [TeamResponse.from_team(t) for t in hierarchy.direct_children(team_id)]


@router.get("/teams/{team_id}/path", response_model=list[TeamResponse])
def get_path(
    team_id: str,
    session: Session = Depends(get_current_session),
    hierarchy: TeamHierarchy = Depends(get_hierarchy),
) -> list[TeamResponse]:
    _ensure_access(hierarchy, session, team_id)
    return [TeamResponse.from_team(t) for t in hierarchy.hierarchy_path(team_id)]


@router.get("/teams/{team_id}/access", response_model=AccessResponse)
def check_access(
    team_id: str,
    session: Session = Depends(get_current_session),
    hierarchy: TeamHierarchy = Depends(get_hierarchy),
) -> AccessResponse:
    """Answer the access question without enforcing it."""
    user_team_id = session.user.team_id
    return AccessResponse(
        user_team_id=user_team_id,
        target_team_id=team_id,
        allowed=hierarchy.can_user_access_team(user_team_id, team_id),
    )


# ---------------------------------------------------------------------------
# Writes (admin)
# ---------------------------------------------------------------------------


@router.post("/teams", response_model=TeamResponse, status_code=201, dependencies=[Depends(require_csrf)])
def create_team(
    body: TeamCreate,
    admin: Session = Depends(require_admin),
    hierarchy: TeamHierarchy = Depends(get_hierarchy),
) -> TeamResponse:
    """Create a non-root team under parent_id. Unknown parent -> 404."""
    store: TeamStore = hierarchy.store
    team_id = store.create_team(Team(name=body.name, description=body.description, parent_id=body.parent_id))
    hierarchy.invalidate()
    return TeamResponse.from_team(store.get_team(team_id))


@router.patch("/teams/{team_id}", response_model=TeamResponse, dependencies=[Depends(require_csrf)])
def update_team(
    team_id: str,
    body: TeamPatch,
    admin: Session = Depends(require_admin),
    hierarchy: TeamHierarchy = Depends(get_hierarchy),
) -> TeamResponse:
    """Rename, re-describe, or move a team. Moves are cycle-checked (400 on a cycle)."""
    store: TeamStore = hierarchy.store
    _require_team(hierarchy, team_id)

    if body.parent_id is not None:
        hierarchy.move_team(team_id, body.parent_id)

    # name is NOT NULL; an explicit null means "leave as is".
    fields = body.model_dump(exclude_unset=True, exclude={"parent_id"})
    if fields.get("name", "") is None:
        del fields["name"]
    if fields:
        store.update_team(team_id, **fields)
        hierarchy.invalidate()
    return TeamResponse.from_team(store.get_team(team_id))
