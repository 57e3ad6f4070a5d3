"""Lifecycle state machines for major projects, minor projects and participants.

Mutation handlers live outside this package; they and the read-side engine
share these tables so an illegal state can be detected instead of trusted.
The read side never refuses to render an illegal state, it reports it through
``audit_snapshot``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from .utils import dict_rows, text

Guard = Callable[[dict[str, Any]], str | None]

MAJOR_STATUSES = ("draft", "recruiting", "in_progress", "completed")
MINOR_STATUSES = ("recruiting", "in_progress", "review", "completed")
PARTICIPANT_STATUSES = ("applied", "approved", "rejected")

ACTIVE_PARTICIPANT_STATUSES = frozenset({"applied", "approved"})
PARTICIPANT_STATUS_RANK = {"approved": 2, "applied": 1, "rejected": 0}


class TransitionError(Exception):
    """A requested status change is not permitted by the state machine."""

    def __init__(self, machine: str, current: str, target: str, reason: str):
        super().__init__(f"{machine}: {current or '<none>'} -> {target or '<none>'} rejected ({reason})")
        self.machine = machine
        self.current = current
        self.target = target
        self.reason = reason


def _all_children_completed(context: dict[str, Any]) -> str | None:
    children = dict_rows(context.get("minor_projects"))
    pending = [text(child.get("id")) for child in children if text(child.get("status")) != "completed"]
    if pending:
        return f"minor projects not completed: {', '.join(pending)}"
    return None


def _minor_not_completed(context: dict[str, Any]) -> str | None:
    minor = context.get("minor_project")
    if isinstance(minor, dict) and text(minor.get("status")) == "completed":
        return "minor project already completed"
    return None


@dataclass(frozen=True)
class StateMachine:
    name: str
    states: tuple[str, ...]
    transitions: dict[str, frozenset[str]]
    guards: dict[tuple[str, str], Guard] = field(default_factory=dict)
    initial: str = ""

    def is_known(self, status: Any) -> bool:
        return text(status) in self.states

    def is_terminal(self, status: Any) -> bool:
        return self.is_known(status) and not self.transitions.get(text(status))

    def allowed_targets(self, status: Any) -> frozenset[str]:
        return self.transitions.get(text(status), frozenset())

    def check_transition(self, current: Any, target: Any, context: dict[str, Any] | None = None):
        """Raise ``TransitionError`` unless ``current -> target`` is permitted."""
        src = text(current)
        dst = text(target)
        if not self.is_known(dst):
            raise TransitionError(self.name, src, dst, "unknown target state")
        if not src:
            if dst != self.initial:
                raise TransitionError(self.name, src, dst, f"new records start as '{self.initial}'")
            return
        if not self.is_known(src):
            raise TransitionError(self.name, src, dst, "unknown current state")
        if dst not in self.allowed_targets(src):
            if self.is_terminal(src):
                raise TransitionError(self.name, src, dst, "terminal state")
            raise TransitionError(self.name, src, dst, "transition not permitted")
        guard = self.guards.get((src, dst))
        if guard is not None:
            reason = guard(context or {})
            if reason:
                raise TransitionError(self.name, src, dst, reason)

    def can_transition(self, current: Any, target: Any, context: dict[str, Any] | None = None) -> bool:
        try:
            self.check_transition(current, target, context)
        except TransitionError:
            return False
        return True


MAJOR_MACHINE = StateMachine(
    name="major_project",
    states=MAJOR_STATUSES,
    transitions={
        "draft": frozenset({"recruiting"}),
        "recruiting": frozenset({"in_progress"}),
        "in_progress": frozenset({"completed"}),
        "completed": frozenset(),
    },
    guards={("in_progress", "completed"): _all_children_completed},
    initial="draft",
)

MINOR_MACHINE = StateMachine(
    name="minor_project",
    states=MINOR_STATUSES,
    transitions={
        "recruiting": frozenset({"in_progress"}),
        "in_progress": frozenset({"review"}),
        "review": frozenset({"completed"}),
        "completed": frozenset(),
    },
    initial="recruiting",
)

PARTICIPANT_MACHINE = StateMachine(
    name="participant",
    states=PARTICIPANT_STATUSES,
    transitions={
        "applied": frozenset({"approved", "rejected"}),
        "approved": frozenset(),
        "rejected": frozenset(),
    },
    guards={("applied", "approved"): _minor_not_completed},
    initial="applied",
)


def is_minor_open(minor: dict[str, Any], parent: dict[str, Any] | None) -> bool:
    if parent is None or text(parent.get("status")) != "recruiting":
        return False
    return text(minor.get("status")) not in ("review", "completed")


def _anomaly(kind: str, entity: str, entity_id: str, detail: str) -> dict[str, str]:
    return {"kind": kind, "entity": entity, "id": entity_id, "detail": detail}


def audit_snapshot(snapshot: dict[str, Any]) -> list[dict[str, str]]:
    """List states the lifecycle tables consider illegal. Never raises."""
    anomalies: list[dict[str, str]] = []
    majors = dict_rows(snapshot.get("major_projects"))
    minors = dict_rows(snapshot.get("minor_projects"))
    participants = dict_rows(snapshot.get("participants"))
    major_ids = {text(m.get("id")) for m in majors}
    minor_ids = {text(m.get("id")) for m in minors}

    for major in majors:
        status = text(major.get("status"))
        if not MAJOR_MACHINE.is_known(status):
            anomalies.append(_anomaly("unknown_status", "major_project", text(major.get("id")), status or "<empty>"))

    children_by_major: dict[str, list[dict[str, Any]]] = {}
    for minor in minors:
        parent_id = text(minor.get("major_project_id"))
        children_by_major.setdefault(parent_id, []).append(minor)
        status = text(minor.get("status"))
        if not MINOR_MACHINE.is_known(status):
            anomalies.append(_anomaly("unknown_status", "minor_project", text(minor.get("id")), status or "<empty>"))
        if major_ids and parent_id not in major_ids:
            anomalies.append(_anomaly("dangling_reference", "minor_project", text(minor.get("id")), f"major_project_id={parent_id}"))

    for major in majors:
        if text(major.get("status")) != "completed":
            continue
        reason = _all_children_completed({"minor_projects": children_by_major.get(text(major.get("id")), [])})
        if reason:
            anomalies.append(_anomaly("incomplete_children", "major_project", text(major.get("id")), reason))

    seen: set[tuple[str, str]] = set()
    for participant in participants:
        pid = text(participant.get("id"))
        status = text(participant.get("status"))
        if not PARTICIPANT_MACHINE.is_known(status):
            anomalies.append(_anomaly("unknown_status", "participant", pid, status or "<empty>"))
        minor_id = text(participant.get("minor_project_id"))
        if minor_ids and minor_id not in minor_ids:
            anomalies.append(_anomaly("dangling_reference", "participant", pid, f"minor_project_id={minor_id}"))
        key = (minor_id, text(participant.get("master_id")))
        if key in seen:
            anomalies.append(_anomaly("duplicate_participant", "participant", pid, f"{key[0]}/{key[1]}"))
        seen.add(key)

    return anomalies
