"""
teams/hierarchy.py -- Ancestor/descendant resolution and upward-only access checks.

Teams form a rooted tree through parent_id. Each public call loads the whole
team table once (or takes it from the snapshot cache) into two adjacency maps
and walks them in memory. Team counts are small and these calls are hot, so
one SELECT plus dict lookups beats a recursive query per call.

Depth is always relative to the team a traversal starts from:
  ancestors(t)    depth 1 = parent, 2 = grandparent, ..., root last
  descendants(t)  depth 1 = children, 2 = grandchildren, ... (breadth-first)
  hierarchy_path  root first; depth = position in the path (root = 0)
The starting team itself is never part of ancestors() or descendants().

Access rule: a user may access their own team and any of its ancestors,
never siblings or descendants. Descendant access, if wanted, is a separate
grant the caller has to layer on top.

Walks stop at a node they have already visited, so a corrupted table with a
parent cycle cannot hang a request. That condition is logged at ERROR.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Optional

from core.cache import TTLCache
from core.errors import HierarchyCycleError, NoRootError, NotFoundError
from teams.models import HierarchyTeam, Team
from teams.store import TeamStore

logger = logging.getLogger("teamgate.teams")

_CACHE_KEY = "teams:snapshot"


class _Snapshot:
    """Immutable adjacency view of the team table at one point in time."""

    def __init__(self, teams: list[Team]) -> None:
        self.by_id: dict[str, Team] = {t.id: t for t in teams}
        self.children: dict[str, list[Team]] = defaultdict(list)
        for team in teams:
            if team.parent_id is not None:
                self.children[team.parent_id].append(team)
        self.root: Optional[Team] = next((t for t in teams if t.is_root), None)

    def chain(self, team_id: str) -> list[Team]:
        """Return [team, parent, grandparent, ..., root]; empty if team_id is unknown."""
        team = self.by_id.get(team_id)
        if team is None:
            return []
        chain = [team]
        seen = {team.id}
        parent_id = team.parent_id
        while parent_id is not None:
            if parent_id in seen:
                logger.error("Team hierarchy cycle detected at %s", parent_id)
                break
            parent = self.by_id.get(parent_id)
            if parent is None:
                break
            chain.append(parent)
            seen.add(parent.id)
            parent_id = parent.parent_id
        return chain


class TeamHierarchy:
    """Read-side resolver over the team tree.

    Usage:
        hierarchy = TeamHierarchy(TeamStore(engine))
        hierarchy.ancestors("team_marketing")      # [operations, root]
        hierarchy.can_user_access_team(user.team_id, "team_operations")

    With a cache, the adjacency snapshot is reused for cache_ttl seconds;
    call invalidate() after any write to the teams table.
    """

    def __init__(self, store: TeamStore, cache: Optional[TTLCache] = None, cache_ttl: float = 0) -> None:
        self.store = store
        self.cache = cache
        self.cache_ttl = cache_ttl

    def _snapshot(self) -> _Snapshot:
        if self.cache is not None and self.cache_ttl > 0:
            return self.cache.get_or_set(_CACHE_KEY, self._load, self.cache_ttl)
        return self._load()

    def _load(self) -> _Snapshot:
        return _Snapshot(self.store.list_teams())

    def invalidate(self) -> None:
        """Drop the cached snapshot so the next call sees current rows."""
        if self.cache is not None:
            self.cache.delete(_CACHE_KEY)

    # ------------------------------------------------------------------
    # Traversals
    # ------------------------------------------------------------------

    def ancestors(self, team_id: str) -> list[HierarchyTeam]:
        """Ancestors of team_id, immediate parent first (depth 1) and root last."""
        chain = self._snapshot().chain(team_id)
        return [HierarchyTeam.from_team(t, depth) for depth, t in enumerate(chain) if depth > 0]

    def descendants(self, team_id: str) -> list[HierarchyTeam]:
        """All teams below team_id, breadth-first, in ascending depth."""
        snapshot = self._snapshot()
        result: list[HierarchyTeam] = []
        seen = {team_id}
        queue = deque([(team_id, 0)])
        while queue:
            current_id, depth = queue.popleft()
            for child in snapshot.children.get(current_id, []):
                if child.id in seen:
                    logger.error("Team hierarchy cycle detected at %s", child.id)
                    continue
                seen.add(child.id)
                result.append(HierarchyTeam.from_team(child, depth + 1))
                queue.append((child.id, depth + 1))
        return result

    def is_ancestor(self, ancestor_id: str, team_id: str) -> bool:
        """True iff ancestor_id is a strict ancestor of team_id."""
        return any(t.id == ancestor_id for t in self.ancestors(team_id))

    def is_descendant(self, descendant_id: str, team_id: str) -> bool:
        """True iff descendant_id is a strict descendant of team_id."""
        return self.is_ancestor(team_id, descendant_id)

    def hierarchy_path(self, team_id: str) -> list[HierarchyTeam]:
        """[root, ..., parent, team] with depth 0 at the root and len(ancestors) at team.

        Raises NotFoundError if team_id does not exist.
        """
        chain = self._snapshot().chain(team_id)
        if not chain:
            raise NotFoundError(f"Team with ID {team_id} not found")
        return [HierarchyTeam.from_team(t, depth) for depth, t in enumerate(reversed(chain))]

    def root(self) -> Optional[HierarchyTeam]:
        root = self._snapshot().root
        return HierarchyTeam.from_team(root, 0) if root is not None else None

    def direct_children(self, team_id: str) -> list[HierarchyTeam]:
        return [HierarchyTeam.from_team(t, 1) for t in self._snapshot().children.get(team_id, [])]

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def can_user_access_team(self, user_team_id: str, target_team_id: str) -> bool:
        """A user may access their own team and its ancestors -- nothing below or beside."""
        if user_team_id == target_team_id:
            return True
        return self.is_ancestor(target_team_id, user_team_id)

    def common_ancestor(self, team_a: str, team_b: str) -> Optional[HierarchyTeam]:
        """Lowest common ancestor of two teams, or None if they share none.

        Each chain includes the team itself, so when one team is an ancestor
        of the other, that team is the answer. depth is relative to team_a.
        """
        snapshot = self._snapshot()
        chain_a = {t.id: depth for depth, t in enumerate(snapshot.chain(team_a))}
        for team in snapshot.chain(team_b):
            if team.id in chain_a:
                return HierarchyTeam.from_team(team, chain_a[team.id])
        return None

    def build_tree(self, root_team_id: Optional[str] = None) -> HierarchyTeam:
        """Nested tree from root_team_id (or the global root), depths relative to the start.

        Raises NoRootError when no start is given and no root is configured,
        NotFoundError when root_team_id does not exist.
        """
        snapshot = self._snapshot()
        if root_team_id is None:
            start = snapshot.root
            if start is None:
                raise NoRootError()
        else:
            start = snapshot.by_id.get(root_team_id)
            if start is None:
                raise NotFoundError(f"Team with ID {root_team_id} not found")
        return self._subtree(snapshot, start, 0, set())

    def _subtree(self, snapshot: _Snapshot, team: Team, depth: int, seen: set[str]) -> HierarchyTeam:
        seen.add(team.id)
        children = []
        for child in snapshot.children.get(team.id, []):
            if child.id in seen:
                logger.error("Team hierarchy cycle detected at %s", child.id)
                continue
            children.append(self._subtree(snapshot, child, depth + 1, seen))
        return HierarchyTeam.from_team(team, depth, children)

    # ------------------------------------------------------------------
    # Writes that need the tree
    # ------------------------------------------------------------------

    def move_team(self, team_id: str, new_parent_id: str) -> Team:
        """Re-parent team_id under new_parent_id.

        Raises NotFoundError for unknown ids and HierarchyCycleError if the
        new parent is the team itself or one of its descendants. Moving the
        root is always a cycle, since every other team descends from it.
        """
        snapshot = self._load()
        if team_id not in snapshot.by_id:
            raise NotFoundError(f"Team with ID {team_id} not found")
        if new_parent_id not in snapshot.by_id:
            raise NotFoundError(f"Team with ID {new_parent_id} not found")
        if new_parent_id == team_id or any(t.id == team_id for t in snapshot.chain(new_parent_id)):
            raise HierarchyCycleError(f"Cannot move team {team_id} under its own descendant {new_parent_id}")

        self.store.update_team(team_id, parent_id=new_parent_id)
        self.invalidate()
        logger.info("Team %s moved under %s", team_id, new_parent_id)
        return self.store.get_team(team_id)
