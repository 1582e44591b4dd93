"""
Structured change records produced by the change detector.

Every record carries a `kind` and typed fields; wording is only produced
when a notification is rendered, so the diff logic stays independent of the
notification language.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Optional


class ChangeKind(str, Enum):
    FIELD_CHANGED = "field_changed"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    MEMBER_ROLE_CHANGED = "member_role_changed"
    APPLICABILITY_CHANGED = "applicability_changed"
    PROGRESS_CHANGED = "progress_changed"
    COMMENT_CHANGED = "comment_changed"
    TASK_ASSIGNED = "task_assigned"
    TASK_UNASSIGNED = "task_unassigned"
    TASK_REASSIGNED = "task_reassigned"
    TASK_RENAMED = "task_renamed"


@dataclass(frozen=True)
class Change:
    """Base class of every change record."""

    kind: ClassVar[ChangeKind]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


@dataclass(frozen=True)
class FieldChange(Change):
    """A header field of a case file changed value."""

    kind: ClassVar[ChangeKind] = ChangeKind.FIELD_CHANGED
    field: str
    before: Any
    after: Any


@dataclass(frozen=True)
class MemberAdded(Change):
    kind: ClassVar[ChangeKind] = ChangeKind.MEMBER_ADDED
    member_id: str
    name: str


@dataclass(frozen=True)
class MemberRemoved(Change):
    kind: ClassVar[ChangeKind] = ChangeKind.MEMBER_REMOVED
    member_id: str
    name: str


@dataclass(frozen=True)
class MemberRoleChanged(Change):
    kind: ClassVar[ChangeKind] = ChangeKind.MEMBER_ROLE_CHANGED
    member_id: str
    name: str
    before: str
    after: str


@dataclass(frozen=True)
class ApplicabilityChanged(Change):
    kind: ClassVar[ChangeKind] = ChangeKind.APPLICABILITY_CHANGED
    before: bool
    after: bool


@dataclass(frozen=True)
class ProgressChanged(Change):
    kind: ClassVar[ChangeKind] = ChangeKind.PROGRESS_CHANGED
    before: int
    after: int


@dataclass(frozen=True)
class CommentChanged(Change):
    """Only the fact of the edit is recorded, never the comment text."""

    kind: ClassVar[ChangeKind] = ChangeKind.COMMENT_CHANGED


@dataclass(frozen=True)
class AssigneeChanged(Change):
    """
    Assignment transfer of a task.

    `kind` is derived from the two sides: assigned when there was no previous
    assignee, unassigned when there is no new one, reassigned otherwise.
    """

    before: Optional[str]
    after: Optional[str]

    @property
    def kind(self) -> ChangeKind:  # type: ignore[override]
        if not self.before:
            return ChangeKind.TASK_ASSIGNED
        if not self.after:
            return ChangeKind.TASK_UNASSIGNED
        return ChangeKind.TASK_REASSIGNED


@dataclass(frozen=True)
class TaskRenamed(Change):
    kind: ClassVar[ChangeKind] = ChangeKind.TASK_RENAMED
    before: str
    after: str
