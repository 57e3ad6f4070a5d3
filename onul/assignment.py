"""Assignment / eligibility counts for minor and major projects."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from .lifecycle import ACTIVE_PARTICIPANT_STATUSES, PARTICIPANT_STATUS_RANK, is_minor_open
from .status import participation_label, status_badge
from .utils import as_local_naive, dict_rows, non_negative_int, row_id, text

logger = logging.getLogger(__name__)


def _participant_priority(participant: dict[str, Any]) -> tuple[int, float]:
    rank = PARTICIPANT_STATUS_RANK.get(text(participant.get("status")), -1)
    created = as_local_naive(participant.get("created_at"))
    # Higher rank first, then earliest created_at.
    return (-rank, created.timestamp() if created else float("inf"))


def dedupe_participants(participants: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Keep one participant per (minor_project_id, master_id).

    Uniqueness is not enforced by storage, so duplicates are collapsed here:
    the strongest status wins (approved > applied > rejected), ties go to the
    earliest application. Output keeps first-seen order of the pairs.
    """
    chosen: dict[tuple[str, str], dict[str, Any]] = {}
    duplicates = 0
    for participant in dict_rows(list(participants)):
        key = (text(participant.get("minor_project_id")), text(participant.get("master_id")))
        current = chosen.get(key)
        if current is None:
            chosen[key] = participant
            continue
        duplicates += 1
        if _participant_priority(participant) < _participant_priority(current):
            chosen[key] = participant
    if duplicates:
        logger.warning("Collapsed %d duplicate participant row(s)", duplicates)
    return list(chosen.values())


def applied_count(participants: Iterable[dict[str, Any]]) -> int:
    return sum(1 for p in dict_rows(list(participants)) if text(p.get("status")) in ACTIVE_PARTICIPANT_STATUSES)


def approved_count(participants: Iterable[dict[str, Any]]) -> int:
    return sum(1 for p in dict_rows(list(participants)) if text(p.get("status")) == "approved")


def is_near_capacity(applied: int, required: int) -> bool:
    return required > 0 and applied >= required


def minor_capacity(minor: dict[str, Any], participants: Iterable[dict[str, Any]]) -> dict[str, Any]:
    rows = dict_rows(list(participants))
    required = non_negative_int(minor.get("required_masters"))
    applied = applied_count(rows)
    return {
        "minor_project_id": row_id(minor),
        "required_count": required,
        "applied_count": applied,
        "approved_count": approved_count(rows),
        "near_capacity": is_near_capacity(applied, required),
    }


def major_rollup(
    major: dict[str, Any],
    minors: Iterable[dict[str, Any]],
    participants_by_minor: dict[str, list[dict[str, Any]]],
) -> dict[str, Any]:
    """Sum required/applied counts over a major project's children."""
    required = 0
    applied = 0
    children = dict_rows(list(minors))
    for minor in children:
        capacity = minor_capacity(minor, participants_by_minor.get(row_id(minor), []))
        required += capacity["required_count"]
        applied += capacity["applied_count"]
    status = text(major.get("status"))
    return {
        "major_project_id": row_id(major),
        "minor_projects_count": len(children),
        "required_count": required,
        "applied_count": applied,
        "near_capacity": is_near_capacity(applied, required),
        "badge": status_badge(status, applied, required),
    }


def participant_state(participants: Iterable[dict[str, Any]], master_id: Any, minor_id: Any = None) -> dict[str, Any]:
    """A master's own standing against one minor project."""
    ident = text(master_id)
    target = text(minor_id)
    mine = [
        p for p in dedupe_participants(participants)
        if ident and text(p.get("master_id")) == ident
        and (not target or text(p.get("minor_project_id")) == target)
    ]
    status = text(mine[0].get("status")) if mine else None
    return {
        "status": status,
        "has_applied": status in ACTIVE_PARTICIPANT_STATUSES,
        "is_approved": status == "approved",
    }


def participation_action(
    minor: dict[str, Any],
    parent: dict[str, Any] | None,
    participants: Iterable[dict[str, Any]],
    master_id: Any,
) -> dict[str, Any]:
    """Which participation control a master is offered on a minor project.

    A master already applied or approved is never offered ``apply`` again.
    """
    rows = dict_rows(list(participants))
    state = participant_state(rows, master_id, row_id(minor))
    if state["status"] == "applied":
        action: str | None = "cancel"
    elif state["status"] == "approved":
        action = "confirmed"
    elif is_near_capacity(approved_count(rows), non_negative_int(minor.get("required_masters"))):
        action = "closed"
    elif is_minor_open(minor, parent):
        action = "apply"
    else:
        action = None
    return {
        "action": action,
        "label": participation_label(action),
        "state": state,
    }
