"""
French wording of notifications and emails.

Change records are turned into text here and nowhere else. Each template
renders the in-app title and message plus the email subject and body from a
context dict with `str.format`.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable

from backend.app.models.domain.changes import (
    ApplicabilityChanged,
    AssigneeChanged,
    Change,
    ChangeKind,
    CommentChanged,
    FieldChange,
    MemberAdded,
    MemberRemoved,
    MemberRoleChanged,
    ProgressChanged,
    TaskRenamed,
)
from backend.app.models.domain.notification import NotificationKind


FIELD_LABELS = {
    "numero_liste": "numéro de liste",
    "objet_dossier": "objet du dossier",
    "reference": "référence",
    "autorite_contractante": "autorité contractante",
    "date_depot": "date de dépôt",
}

NO_ASSIGNEE = "aucun"
GENERIC_TASK_CHANGE = "modification"


class TemplateKey(str, Enum):
    DAO_CREATED = "dao_created"
    DAO_FIELDS_UPDATED = "dao_fields_updated"
    DAO_MODIFIED = "dao_modified"
    TEAM_UPDATED = "team_updated"
    TASK_CREATED = "task_created"
    TASK_RENAMED = "task_renamed"
    TASK_UPDATED = "task_updated"
    TASK_ASSIGNED = "task_assigned"
    TASK_UNASSIGNED = "task_unassigned"
    TASK_DELETED = "task_deleted"
    TASK_REORDERED = "task_reordered"


@dataclass(frozen=True)
class RenderedNotification:
    kind: NotificationKind
    title: str
    message: str
    email_subject: str
    email_body: str


@dataclass(frozen=True)
class NotificationTemplate:
    """Template for one notification and its email."""
    kind: NotificationKind
    title_template: str
    message_template: str
    email_subject_template: str
    email_body_template: str

    def render(self, context: Dict[str, Any]) -> RenderedNotification:
        """Render template with context variables."""
        try:
            return RenderedNotification(
                kind=self.kind,
                title=self.title_template.format(**context),
                message=self.message_template.format(**context),
                email_subject=self.email_subject_template.format(**context),
                email_body=self.email_body_template.format(**context),
            )
        except KeyError as e:
            raise ValueError(f"Missing template variable {e} for {self.kind.value}") from e


TASK_LINE = "DAO {numero} – Tâche #{task_id} ({task_name}): {changes}"

TEMPLATES: Dict[TemplateKey, NotificationTemplate] = {
    TemplateKey.DAO_CREATED: NotificationTemplate(
        kind=NotificationKind.DAO_CREATED,
        title_template="Nouveau DAO créé",
        message_template="{numero} – {objet}",
        email_subject_template="Nouveau DAO",
        email_body_template="Un nouveau DAO a été créé: {numero} – {objet}.",
    ),
    TemplateKey.DAO_FIELDS_UPDATED: NotificationTemplate(
        kind=NotificationKind.DAO_UPDATED,
        title_template="DAO mis à jour",
        message_template="DAO {numero} – Champs modifiés: {changes}",
        email_subject_template="DAO mis à jour",
        email_body_template="Le DAO {numero} a été mis à jour. Champs modifiés: {changes}.",
    ),
    TemplateKey.DAO_MODIFIED: NotificationTemplate(
        kind=NotificationKind.DAO_UPDATED,
        title_template="DAO mis à jour",
        message_template="DAO {numero} modifié",
        email_subject_template="DAO mis à jour",
        email_body_template="Le DAO {numero} a été modifié.",
    ),
    TemplateKey.TEAM_UPDATED: NotificationTemplate(
        kind=NotificationKind.ROLE_UPDATE,
        title_template="Modification de l'équipe",
        message_template="{changes}",
        email_subject_template="Mise à jour de l'équipe du DAO",
        email_body_template="DAO {numero} – Modifications: {changes}",
    ),
    TemplateKey.TASK_CREATED: NotificationTemplate(
        kind=NotificationKind.TASK_CREATED,
        title_template="Nouvelle tâche créée",
        message_template='"{task_name}" a été ajoutée au DAO {numero}',
        email_subject_template="Nouvelle tâche",
        email_body_template='Une nouvelle tâche "{task_name}" a été ajoutée au DAO {numero}.',
    ),
    TemplateKey.TASK_RENAMED: NotificationTemplate(
        kind=NotificationKind.TASK_UPDATED,
        title_template="Nom de tâche modifié",
        message_template='Tâche #{task_id}: "{old_name}" → "{task_name}" (DAO {numero})',
        email_subject_template="Nom de tâche modifié",
        email_body_template=(
            'La tâche #{task_id} du DAO {numero} a été renommée: "{old_name}" → "{task_name}".'
        ),
    ),
    TemplateKey.TASK_UPDATED: NotificationTemplate(
        kind=NotificationKind.TASK_UPDATED,
        title_template="Tâche mise à jour",
        message_template=TASK_LINE,
        email_subject_template="Tâche mise à jour",
        email_body_template="DAO {numero} – Tâche #{task_id} ({task_name}) mise à jour: {changes}.",
    ),
    TemplateKey.TASK_ASSIGNED: NotificationTemplate(
        kind=NotificationKind.TASK_ASSIGNED,
        title_template="Tâche assignée",
        message_template=TASK_LINE,
        email_subject_template="Nouvelle tâche assignée",
        email_body_template='La tâche "{task_name}" vous a été assignée sur le DAO {numero}.',
    ),
    TemplateKey.TASK_UNASSIGNED: NotificationTemplate(
        kind=NotificationKind.TASK_UNASSIGNED,
        title_template="Tâche désassignée",
        message_template=TASK_LINE,
        email_subject_template="Tâche désassignée",
        email_body_template="La tâche \"{task_name}\" du DAO {numero} n'est plus assignée.",
    ),
    TemplateKey.TASK_DELETED: NotificationTemplate(
        kind=NotificationKind.TASK_DELETED,
        title_template="Tâche supprimée",
        message_template='La tâche "{task_name}" a été supprimée du DAO {numero}',
        email_subject_template="Tâche supprimée",
        email_body_template='La tâche "{task_name}" a été supprimée du DAO {numero}.',
    ),
    TemplateKey.TASK_REORDERED: NotificationTemplate(
        kind=NotificationKind.TASK_REORDERED,
        title_template="Réorganisation des tâches",
        message_template="Les tâches du DAO {numero} ont été réordonnées",
        email_subject_template="Réorganisation des tâches",
        email_body_template="Les tâches du DAO {numero} ont été réordonnées.",
    ),
}


def render(key: TemplateKey, **context: Any) -> RenderedNotification:
    return TEMPLATES[key].render(context)


def _yes_no(flag: bool) -> str:
    return "Oui" if flag else "Non"


def describe_change(change: Change) -> str:
    """Render one change record as a short French phrase."""
    if isinstance(change, FieldChange):
        label = FIELD_LABELS.get(change.field, change.field)
        return f'{label} ("{change.before}" → "{change.after}")'
    if isinstance(change, MemberAdded):
        return f"{change.name} ajouté"
    if isinstance(change, MemberRemoved):
        return f"{change.name} retiré"
    if isinstance(change, MemberRoleChanged):
        return f"{change.name}: {change.before} → {change.after}"
    if isinstance(change, ApplicabilityChanged):
        return f"applicabilité {_yes_no(change.before)} → {_yes_no(change.after)}"
    if isinstance(change, ProgressChanged):
        return f"progression {change.before}% → {change.after}%"
    if isinstance(change, CommentChanged):
        return "commentaire modifié"
    if isinstance(change, AssigneeChanged):
        if change.kind == ChangeKind.TASK_ASSIGNED:
            return f"assignée à {change.after}"
        return f"réassignée ({change.before} → {change.after or NO_ASSIGNEE})"
    if isinstance(change, TaskRenamed):
        return f'renommée: "{change.before}" → "{change.after}"'
    return change.kind.value


def describe_changes(changes: Iterable[Change], empty: str = "") -> str:
    phrases = [describe_change(change) for change in changes]
    return ", ".join(phrases) if phrases else empty
