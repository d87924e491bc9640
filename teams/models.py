"""
teams/models.py -- Domain dataclasses for the team tree.

Team mirrors one row of the teams table. HierarchyTeam is the derived,
read-only view the resolver returns: a team plus its depth relative to the
team a traversal started from, and optionally its nested children. It is
rebuilt on every call and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime


@dataclass
class Team:
    name: str
    id: str | None = None
    description: str | None = None
    parent_id: str | None = None  # None only for the root
    is_root: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class HierarchyTeam(Team):
    depth: int = 0
    children: list[HierarchyTeam] | None = None

    @classmethod
    def from_team(cls, team: Team, depth: int, children: list[HierarchyTeam] | None = None) -> HierarchyTeam:
        values = {f.name: getattr(team, f.name) for f in fields(Team)}
        return cls(**values, depth=depth, children=children)
