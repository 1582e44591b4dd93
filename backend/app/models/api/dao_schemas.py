"""
Pydantic API schemas for case files and their tasks.

This module defines the request bodies of the DAO endpoints:
- Team member and task schemas shared by creation and update
- Case-file creation and partial update
- Task creation, rename, field update and reorder

JSON field names are camelCase on the wire; attributes are snake_case.
Which optional fields a client actually sent is read from
`model_fields_set`, so an explicit null can be told apart from an absent key.
"""

from typing import List, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from backend.app.models.domain.dao import MemberRole

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CamelModel(BaseModel):
    """Base schema accepting camelCase keys (and snake_case attribute names)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class TeamMemberSchema(CamelModel):
    """Schema for one member of a case-file team."""

    id: str = Field(..., min_length=1, max_length=50, description="Member identifier")
    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    role: MemberRole = Field(..., description="chef_equipe or membre_equipe")
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN, description="Contact address")


class TaskSchema(CamelModel):
    """Schema for a checklist task sent with a full task list."""

    id: int = Field(..., ge=1, description="Task identifier within the case file")
    name: str = Field(..., min_length=1, max_length=200)
    progress: Optional[int] = Field(None, ge=0, le=100)
    comment: Optional[str] = Field(None, max_length=1000)
    is_applicable: bool = Field(...)
    assigned_to: Optional[str] = Field(None, max_length=50)
    last_updated_by: Optional[str] = Field(None, max_length=50)
    last_updated_at: Optional[str] = None


def _check_date(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        date_parser.parse(value)
    except (ValueError, OverflowError):
        raise ValueError("Invalid date format")
    return value


def _check_unique_members(members: Optional[List[TeamMemberSchema]]) -> Optional[List[TeamMemberSchema]]:
    if members is None:
        return members
    ids = [member.id for member in members]
    if len(ids) != len(set(ids)):
        raise ValueError("Team member ids must be unique")
    return members


def _check_unique_tasks(tasks: Optional[List[TaskSchema]]) -> Optional[List[TaskSchema]]:
    if tasks is None:
        return tasks
    ids = [task.id for task in tasks]
    if len(ids) != len(set(ids)):
        raise ValueError("Task ids must be unique")
    return tasks


class DaoCreateRequest(CamelModel):
    """
    Schema for creating a case file.

    An absent sequence number, or the `...-001` placeholder the form
    pre-fills, is replaced by the next free number of the current year.
    Without tasks the default checklist is used.
    """

    numero_liste: Optional[str] = Field(None, min_length=1, max_length=50)
    objet_dossier: str = Field(..., min_length=1, max_length=500)
    reference: str = Field(..., min_length=1, max_length=200)
    autorite_contractante: str = Field(..., min_length=1, max_length=200)
    date_depot: str = Field(..., description="Submission date, stored as sent")
    equipe: List[TeamMemberSchema] = Field(..., min_length=1, max_length=20)
    tasks: Optional[List[TaskSchema]] = Field(None, max_length=50)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "numeroListe": "DAO-2025-001",
                "objetDossier": "Fourniture de matériel informatique",
                "reference": "AO/2025/014",
                "autoriteContractante": "Ministère de l'Économie",
                "dateDepot": "2025-03-15",
                "equipe": [
                    {"id": "u1", "name": "Awa Diop", "role": "chef_equipe", "email": "awa@example.com"}
                ],
            }
        }
    )

    @field_validator("date_depot")
    @classmethod
    def validate_date_depot(cls, v):
        return _check_date(v)

    @field_validator("equipe")
    @classmethod
    def validate_equipe(cls, v):
        return _check_unique_members(v)

    @field_validator("tasks")
    @classmethod
    def validate_tasks(cls, v):
        return _check_unique_tasks(v)


class DaoUpdateRequest(CamelModel):
    """Schema for a partial case-file update; only sent fields are applied."""

    numero_liste: Optional[str] = Field(None, min_length=1, max_length=50)
    objet_dossier: Optional[str] = Field(None, min_length=1, max_length=500)
    reference: Optional[str] = Field(None, min_length=1, max_length=200)
    autorite_contractante: Optional[str] = Field(None, min_length=1, max_length=200)
    date_depot: Optional[str] = None
    equipe: Optional[List[TeamMemberSchema]] = Field(None, min_length=1, max_length=20)
    tasks: Optional[List[TaskSchema]] = Field(None, max_length=50)

    @field_validator("date_depot")
    @classmethod
    def validate_date_depot(cls, v):
        return _check_date(v)

    @field_validator("equipe")
    @classmethod
    def validate_equipe(cls, v):
        return _check_unique_members(v)

    @field_validator("tasks")
    @classmethod
    def validate_tasks(cls, v):
        return _check_unique_tasks(v)

    def sent(self, name: str) -> bool:
        """True when the client sent a non-null value for `name`."""
        return name in self.model_fields_set and getattr(self, name) is not None


class TaskCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    is_applicable: bool = Field(...)
    progress: Optional[int] = Field(None, ge=0, le=100)
    comment: Optional[str] = Field(None, max_length=1000)
    assigned_to: Optional[str] = Field(None, max_length=50)


class TaskRenameRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)


class TaskUpdateRequest(CamelModel):
    """
    Schema for updating the fields of one task.

    `assignedTo` set to null or an empty string unassigns the task.
    """

    progress: Optional[int] = Field(None, ge=0, le=100)
    comment: Optional[str] = Field(None, max_length=1000)
    is_applicable: Optional[bool] = None
    assigned_to: Optional[str] = Field(None, max_length=50)

    def sent(self, name: str) -> bool:
        return name in self.model_fields_set


class TaskReorderRequest(CamelModel):
    task_ids: List[int] = Field(default_factory=list, description="Complete ordered list of task ids")
