"""
Domain model for procurement case files (DAO).

This module defines the core entities of the tracker:
- Dao: a case file with its sequence number, descriptive fields, team and
  ordered checklist
- TeamMember: a participant with the lead or regular role
- DaoTask: one checklist item with applicability, progress and assignee
- DEFAULT_TASKS: the checklist seeded when a case file is created empty

Entities serialise to the camelCase JSON shape consumed by the web client.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a `Z` suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class MemberRole(str, Enum):
    """Role of a member inside a case-file team."""

    LEAD = "chef_equipe"
    MEMBER = "membre_equipe"


@dataclass
class TeamMember:
    id: str
    name: str
    role: MemberRole = MemberRole.MEMBER
    email: Optional[str] = None

    @property
    def is_lead(self) -> bool:
        return self.role == MemberRole.LEAD

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
        }
        if self.email:
            data["email"] = self.email
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeamMember":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            role=MemberRole(data.get("role", MemberRole.MEMBER.value)),
            email=data.get("email") or None,
        )


@dataclass
class DaoTask:
    """
    One checklist item of a case file.

    Progress only carries meaning while the task is applicable; it is nulled
    whenever applicability is false.
    """

    id: int
    name: str
    is_applicable: bool = True
    progress: Optional[int] = None
    comment: Optional[str] = None
    assigned_to: Optional[str] = None
    last_updated_by: Optional[str] = None
    last_updated_at: Optional[str] = None

    def __post_init__(self):
        if not self.is_applicable:
            self.progress = None

    def set_applicable(self, is_applicable: bool) -> None:
        self.is_applicable = is_applicable
        if not is_applicable:
            self.progress = None

    def stamp(self, actor_id: str, timestamp: Optional[str] = None) -> None:
        """Record who last modified the task and when."""
        self.last_updated_by = actor_id
        self.last_updated_at = timestamp or utc_now_iso()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "progress": self.progress,
            "isApplicable": self.is_applicable,
        }
        if self.comment is not None:
            data["comment"] = self.comment
        if self.assigned_to is not None:
            data["assignedTo"] = self.assigned_to
        if self.last_updated_by is not None:
            data["lastUpdatedBy"] = self.last_updated_by
        if self.last_updated_at is not None:
            data["lastUpdatedAt"] = self.last_updated_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DaoTask":
        progress = data.get("progress")
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            is_applicable=bool(data.get("isApplicable", True)),
            progress=int(progress) if progress is not None else None,
            comment=data.get("comment"),
            assigned_to=data.get("assignedTo"),
            last_updated_by=data.get("lastUpdatedBy"),
            last_updated_at=data.get("lastUpdatedAt"),
        )


@dataclass
class Dao:
    """A procurement case file."""

    id: str
    numero_liste: str
    objet_dossier: str
    reference: str
    autorite_contractante: str
    date_depot: str
    equipe: List[TeamMember] = field(default_factory=list)
    tasks: List[DaoTask] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    # Largest task id ever issued; deleted ids are never handed out again
    last_task_id: int = 0

    # Header fields compared by the change detector, in display order
    HEADER_FIELDS = (
        "numero_liste",
        "objet_dossier",
        "reference",
        "autorite_contractante",
        "date_depot",
    )

    def copy(self) -> "Dao":
        return copy.deepcopy(self)

    def find_task(self, task_id: int) -> Optional[DaoTask]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def task_index(self, task_id: int) -> int:
        for index, task in enumerate(self.tasks):
            if task.id == task_id:
                return index
        return -1

    def task_ids(self) -> List[int]:
        return [task.id for task in self.tasks]

    def next_task_id(self) -> int:
        """One more than the largest task id ever issued, or 1 for a fresh checklist."""
        return max(self.task_ids() + [self.last_task_id]) + 1

    def find_member(self, member_id: Optional[str]) -> Optional[TeamMember]:
        if not member_id:
            return None
        for member in self.equipe:
            if member.id == member_id:
                return member
        return None

    def is_led_by(self, user_id: str) -> bool:
        member = self.find_member(user_id)
        return member is not None and member.is_lead

    def team_emails(self) -> List[str]:
        return [member.email for member in self.equipe if member.email]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "numeroListe": self.numero_liste,
            "objetDossier": self.objet_dossier,
            "reference": self.reference,
            "autoriteContractante": self.autorite_contractante,
            "dateDepot": self.date_depot,
            "equipe": [member.to_dict() for member in self.equipe],
            "tasks": [task.to_dict() for task in self.tasks],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Dao":
        return cls(
            id=str(data["id"]),
            numero_liste=data.get("numeroListe", ""),
            objet_dossier=data.get("objetDossier", ""),
            reference=data.get("reference", ""),
            autorite_contractante=data.get("autoriteContractante", ""),
            date_depot=data.get("dateDepot", ""),
            equipe=[TeamMember.from_dict(m) for m in data.get("equipe", [])],
            tasks=[DaoTask.from_dict(t) for t in data.get("tasks", [])],
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )

    def __str__(self) -> str:
        return f"Dao({self.id}, {self.numero_liste})"


# Checklist seeded on every case file created without explicit tasks
DEFAULT_TASKS: List[Dict[str, Any]] = [
    {"id": 1, "name": "Résumé sommaire DAO et création du drive", "isApplicable": True},
    {"id": 2, "name": "Demande de caution et garanties", "isApplicable": True},
    {"id": 3, "name": "Identification et renseignement des profils dans le drive", "isApplicable": True},
    {"id": 4, "name": "Identification et renseignement des ABE dans le drive", "isApplicable": True},
    {"id": 5, "name": "Légalisation des ABE, diplômes et attestations requis", "isApplicable": True},
    {"id": 6, "name": "Indication directive d'élaboration de l'offre financière", "isApplicable": True},
    {"id": 7, "name": "Elaboration de la méthodologie", "isApplicable": True},
    {"id": 8, "name": "Planification prévisionnelle", "isApplicable": True},
    {"id": 9, "name": "Identification des références des équipements et matériels", "isApplicable": True},
    {"id": 10, "name": "Demande de cotation", "isApplicable": True},
    {"id": 11, "name": "Elaboration du squelette des offres", "isApplicable": True},
    {"id": 12, "name": "Rédaction du contenu des offres financière et technique", "isApplicable": True},
    {"id": 13, "name": "Contrôle et validation des offres", "isApplicable": True},
    {"id": 14, "name": "Impression et présentation des offres", "isApplicable": True},
    {"id": 15, "name": "Dépôt des offres et clôture", "isApplicable": True},
]
