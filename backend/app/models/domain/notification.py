"""
In-app notification events.

Events reference case files and tasks by id only; deleting a task or a case
file never touches the events that mention it.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from backend.app.models.domain.dao import utc_now_iso


class NotificationKind(str, Enum):
    """Event kinds understood by the web client."""

    ROLE_UPDATE = "role_update"
    COMMENT_ADDED = "comment_added"
    COMMENT_UPDATED = "comment_updated"
    COMMENT_DELETED = "comment_deleted"
    TASK_CREATED = "task_created"
    TASK_DELETED = "task_deleted"
    TASK_UPDATED = "task_updated"
    TASK_ASSIGNED = "task_assigned"
    TASK_UNASSIGNED = "task_unassigned"
    DAO_CREATED = "dao_created"
    DAO_UPDATED = "dao_updated"
    TASK_REORDERED = "task_reordered"
    SYSTEM = "system"


@dataclass
class NotificationEvent:
    kind: NotificationKind
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = field(default_factory=utc_now_iso)
    read: bool = False

    def mark_read(self) -> None:
        self.read = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind.value,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "createdAt": self.created_at,
            "read": self.read,
        }
