"""
access.py — Access scope resolution over the sales role hierarchy.

Who may see whose numbers:
    Admin / Sales Admin  — everyone
    Team Leader          — themself, their reps, and their team; falls back
                           to everyone when no team link is configured
    Sales Rep            — nobody (reports are closed to reps)
"""

import logging

from sales_analytics.models import Role, User

logger = logging.getLogger(__name__)

REPORT_ROLES = frozenset({Role.ADMIN, Role.SALES_ADMIN, Role.TEAM_LEADER})


def can_view_reports(viewer: User) -> bool:
    """Capability check run before any report is computed."""
    return viewer.role in REPORT_ROLES


def _team_scope(viewer: User, all_users: list[User]) -> list[User]:
    scope = [
        u for u in all_users
        if u.id == viewer.id
        or (u.role is Role.SALES_REP and u.team_leader_id == viewer.id)
        or (viewer.team_id is not None and u.team_id == viewer.team_id)
    ]
    if not any(u.id == viewer.id for u in scope):
        scope.insert(0, viewer)

    if len(scope) <= 1:
        logger.info(
            "Team leader %s has no linked team; showing all %d users",
            viewer.id, len(all_users),
        )
        return list(all_users)
    return scope


def visible_users(viewer: User, all_users: list[User]) -> list[User]:
    """Return the users whose activity `viewer` may see.

    Roster order is preserved. Applying the function to its own output gives
    the same list.

    Args:
        viewer: The user requesting the report.
        all_users: Full user roster.

    Returns:
        List of visible users (possibly empty).
    """
    role = viewer.role
    if role is Role.ADMIN or role is Role.SALES_ADMIN:
        return list(all_users)
    if role is Role.TEAM_LEADER:
        return _team_scope(viewer, all_users)
    if role is Role.SALES_REP:
        return []
    raise ValueError(f"Unhandled role: {role!r}")


def direct_reports(leader: User, all_users: list[User]) -> list[User]:
    """Sales reps whose manager is `leader`."""
    return [
        u for u in all_users
        if u.role is Role.SALES_REP and u.team_leader_id == leader.id
    ]


def sibling_reps(rep: User, all_users: list[User]) -> list[User]:
    """Sales reps sharing `rep`'s manager, including `rep` itself."""
    if rep.team_leader_id is None:
        return [rep]
    siblings = [
        u for u in all_users
        if u.role is Role.SALES_REP and u.team_leader_id == rep.team_leader_id
    ]
    if not any(u.id == rep.id for u in siblings):
        siblings.insert(0, rep)
    return siblings
