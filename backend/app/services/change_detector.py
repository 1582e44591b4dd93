"""
Change detection between two states of a case file.

Pure functions: nothing here reads storage or mutates its arguments, and
comparing a state with itself always yields an empty list.
"""

from typing import Dict, List, Optional

from backend.app.models.domain.changes import (
    ApplicabilityChanged,
    AssigneeChanged,
    Change,
    CommentChanged,
    FieldChange,
    MemberAdded,
    MemberRemoved,
    MemberRoleChanged,
    ProgressChanged,
)
from backend.app.models.domain.dao import Dao, DaoTask, TeamMember


def diff_dao(before: Dao, after: Dao) -> List[FieldChange]:
    """Compare the header fields of two case-file states."""
    changes = []
    for field_name in Dao.HEADER_FIELDS:
        old_value = getattr(before, field_name)
        new_value = getattr(after, field_name)
        if old_value != new_value:
            changes.append(FieldChange(field=field_name, before=old_value, after=new_value))
    return changes


def diff_team(before: List[TeamMember], after: List[TeamMember]) -> List[Change]:
    """
    Compare two team compositions keyed by member id.

    Additions and role changes come first in the order of `after`, then
    removals in the order of `before`.
    """
    before_by_id: Dict[str, TeamMember] = {member.id: member for member in before}
    after_by_id: Dict[str, TeamMember] = {member.id: member for member in after}

    changes: List[Change] = []
    for member_id, member in after_by_id.items():
        previous = before_by_id.get(member_id)
        if previous is None:
            changes.append(MemberAdded(member_id=member_id, name=member.name))
        elif previous.role != member.role:
            changes.append(MemberRoleChanged(
                member_id=member_id,
                name=member.name,
                before=previous.role.value,
                after=member.role.value,
            ))

    for member_id, member in before_by_id.items():
        if member_id not in after_by_id:
            changes.append(MemberRemoved(member_id=member_id, name=member.name))

    return changes


def _normalize_text(value: Optional[str]) -> str:
    return value or ""


def diff_task(before: DaoTask, after: DaoTask) -> List[Change]:
    """
    Compare two states of one task.

    Progress is only reported while the task is applicable; a missing
    progress counts as 0. Comments are compared but never quoted. An empty
    comment and no comment are the same, as are an empty assignee and none.
    """
    changes: List[Change] = []

    if before.is_applicable != after.is_applicable:
        changes.append(ApplicabilityChanged(before=before.is_applicable, after=after.is_applicable))

    old_progress = before.progress or 0
    new_progress = after.progress or 0
    if after.is_applicable and old_progress != new_progress:
        changes.append(ProgressChanged(before=old_progress, after=new_progress))

    if _normalize_text(before.comment) != _normalize_text(after.comment):
        changes.append(CommentChanged())

    old_assignee = before.assigned_to or None
    new_assignee = after.assigned_to or None
    if old_assignee != new_assignee:
        changes.append(AssigneeChanged(before=old_assignee, after=new_assignee))

    return changes


def diff_tasks(before: List[DaoTask], after: List[DaoTask]) -> Dict[int, List[Change]]:
    """
    Diff every task present in both lists.

    Returns the non-empty change lists keyed by task id, in the order of
    `after`. Added and removed tasks are not reported here.
    """
    before_by_id = {task.id: task for task in before}
    result: Dict[int, List[Change]] = {}
    for task in after:
        previous = before_by_id.get(task.id)
        if previous is None:
            continue
        changes = diff_task(previous, task)
        if changes:
            result[task.id] = changes
    return result


def assignee_change(changes: List[Change]) -> Optional[AssigneeChanged]:
    """Return the assignment transfer contained in a task diff, if any."""
    for change in changes:
        if isinstance(change, AssigneeChanged):
            return change
    return None
