"""
teams/store.py -- SQLAlchemy Core persistence layer for the team tree.

Pattern: Repository + Data Mapper (same as auth/store.py).

The one-root invariant is enforced by the database (partial unique index
uq_teams_single_root in core/db.py), not by this class: two concurrent
create_team(is_root=True) calls cannot both succeed. The loser gets
RootConflictError.

Traversal does not happen here -- teams/hierarchy.py loads list_teams() and
walks it in memory.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core.db import as_utc, teams as _teams, utcnow
from core.errors import NotFoundError, RootConflictError
from core.ids import create_id
from teams.models import Team

logger = logging.getLogger("teamgate.teams")


class TeamStore:
    """Repository for Team rows.

    Usage:
        store = TeamStore(engine)
        root = store.ensure_root()
        ops_id = store.create_team(Team(name="Operations", parent_id=root.id))
        store.list_children(root.id)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_team(self, team: Team) -> str:
        """Insert a team and return its id.

        Raises RootConflictError if team.is_root and a root already exists,
        NotFoundError if parent_id does not reference an existing team.
        """
        if team.is_root and team.parent_id is not None:
            raise ValueError("The root team cannot have a parent")
        if not team.is_root and team.parent_id is None:
            raise ValueError("Only the root team may omit parent_id")

        team_id = team.id or create_id("team")
        now = utcnow()
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _teams.insert().values(
                        id=team_id,
                        name=team.name,
                        description=team.description,
                        parent_id=team.parent_id,
                        is_root=team.is_root,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            if team.is_root and self.get_root() is not None:
                raise RootConflictError() from exc
            raise NotFoundError(f"Team with ID {team.parent_id} not found") from exc
        return team_id

    def ensure_root(self, team_id: str = "root", name: str = "root") -> Team:
        """Return the root team, creating it first if the table has none.

        Idempotent -- safe to call on every startup.
        """
        root = self.get_root()
        if root is not None:
            return root
        try:
            self.create_team(Team(id=team_id, name=name, is_root=True))
            logger.info("Seeded root team %r", team_id)
        except RootConflictError:
            pass  # another process seeded it between our check and insert
        root = self.get_root()
        if root is None:
            raise NotFoundError("Root team could not be created")
        return root

    def get_team(self, team_id: str) -> Team | None:
        with self.engine.connect() as conn:
            row = conn.execute(_teams.select().where(_teams.c.id == team_id)).fetchone()
        return _row_to_team(row) if row is not None else None

    def get_root(self) -> Team | None:
        with self.engine.connect() as conn:
            row = conn.execute(_teams.select().where(_teams.c.is_root.is_(True)).limit(1)).fetchone()
        return _row_to_team(row) if row is not None else None

    def list_teams(self) -> list[Team]:
        """Every team, oldest first. Sibling order in traversals follows this order."""
        with self.engine.connect() as conn:
            rows = conn.execute(select(_teams).order_by(_teams.c.created_at, _teams.c.id)).fetchall()
        return [_row_to_team(r) for r in rows]

    def list_children(self, parent_id: str) -> list[Team]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_teams).where(_teams.c.parent_id == parent_id).order_by(_teams.c.created_at, _teams.c.id)
            ).fetchall()
        return [_row_to_team(r) for r in rows]

    def update_team(self, team_id: str, **fields) -> bool:
        """Update name, description or parent_id. Returns True if a row was updated.

        Cycle checks for parent_id changes belong to TeamHierarchy.move_team();
        this method writes what it is given.
        """
        fields["updated_at"] = utcnow()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_teams.update().where(_teams.c.id == team_id).values(**fields))
                conn.commit()
        except IntegrityError as exc:
            raise NotFoundError(f"Team with ID {fields.get('parent_id')} not found") from exc
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


def _row_to_team(row) -> Team:
    return Team(
        id=row.id,
        name=row.name,
        description=row.description,
        parent_id=row.parent_id,
        is_root=bool(row.is_root),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )
