"""
Unit tests for change detection between case-file states.
"""

from backend.app.models.domain.changes import (
    ApplicabilityChanged,
    AssigneeChanged,
    ChangeKind,
    CommentChanged,
    FieldChange,
    MemberAdded,
    MemberRemoved,
    MemberRoleChanged,
    ProgressChanged,
)
from backend.app.models.domain.dao import DaoTask, MemberRole, TeamMember
from backend.app.services.change_detector import (
    assignee_change,
    diff_dao,
    diff_task,
    diff_tasks,
    diff_team,
)

from conftest import make_dao


class TestDiffDao:
    """Test suite for header field comparison."""

    def setup_method(self):
        self.before = make_dao()

    def test_identical_states_yield_no_changes(self):
        assert diff_dao(self.before, self.before.copy()) == []

    def test_changed_field_is_reported_once(self):
        after = self.before.copy()
        after.objet_dossier = "Travaux de réhabilitation"

        changes = diff_dao(self.before, after)

        assert changes == [FieldChange(
            field="objet_dossier",
            before="Fourniture de matériel informatique",
            after="Travaux de réhabilitation",
        )]

    def test_fields_reported_in_header_order(self):
        after = self.before.copy()
        after.date_depot = "2025-04-01"
        after.numero_liste = "DAO-2025-009"

        assert [c.field for c in diff_dao(self.before, after)] == ["numero_liste", "date_depot"]

    def test_team_and_tasks_are_not_header_fields(self):
        after = self.before.copy()
        after.equipe = []
        after.tasks = []

        assert diff_dao(self.before, after) == []


class TestDiffTeam:
    """Test suite for team composition comparison."""

    def setup_method(self):
        self.lead = TeamMember(id="a", name="Awa", role=MemberRole.LEAD)
        self.member = TeamMember(id="b", name="Moussa", role=MemberRole.MEMBER)
        self.other = TeamMember(id="c", name="Fatou", role=MemberRole.MEMBER)

    def test_same_team_has_no_changes(self):
        assert diff_team([self.lead, self.member], [self.lead, self.member]) == []

    def test_added_removed_and_role_changed(self):
        promoted = TeamMember(id="b", name="Moussa", role=MemberRole.LEAD)

        changes = diff_team([self.lead, self.member], [promoted, self.other])

        assert changes == [
            MemberRoleChanged(member_id="b", name="Moussa", before="membre_equipe", after="chef_equipe"),
            MemberAdded(member_id="c", name="Fatou"),
            MemberRemoved(member_id="a", name="Awa"),
        ]

    def test_removals_come_after_additions(self):
        changes = diff_team([self.lead], [self.other])

        assert isinstance(changes[0], MemberAdded)
        assert isinstance(changes[1], MemberRemoved)


class TestDiffTask:
    """Test suite for single task comparison."""

    def setup_method(self):
        self.task = DaoTask(id=3, name="Planification", progress=20, comment="", assigned_to="a")

    def test_same_task_has_no_changes(self):
        assert diff_task(self.task, DaoTask(**vars(self.task))) == []

    def test_progress_change(self):
        after = DaoTask(**{**vars(self.task), "progress": 60})

        assert diff_task(self.task, after) == [ProgressChanged(before=20, after=60)]

    def test_missing_progress_counts_as_zero(self):
        before = DaoTask(id=1, name="x", progress=None)
        after = DaoTask(id=1, name="x", progress=0)

        assert diff_task(before, after) == []

    def test_not_applicable_reports_only_applicability(self):
        after = DaoTask(**{**vars(self.task), "is_applicable": False})

        changes = diff_task(self.task, after)

        assert changes == [ApplicabilityChanged(before=True, after=False)]

    def test_comment_change_does_not_quote_text(self):
        after = DaoTask(**{**vars(self.task), "comment": "Pièces manquantes"})

        changes = diff_task(self.task, after)

        assert changes == [CommentChanged()]
        assert "Pièces" not in str(changes[0].to_dict())

    def test_empty_and_missing_comment_are_equal(self):
        after = DaoTask(**{**vars(self.task), "comment": None})

        assert diff_task(self.task, after) == []

    def test_reassignment(self):
        after = DaoTask(**{**vars(self.task), "assigned_to": "b"})

        changes = diff_task(self.task, after)

        assert changes == [AssigneeChanged(before="a", after="b")]
        assert changes[0].kind == ChangeKind.TASK_REASSIGNED

    def test_assignment_and_unassignment_kinds(self):
        assert AssigneeChanged(before=None, after="b").kind == ChangeKind.TASK_ASSIGNED
        assert AssigneeChanged(before="a", after=None).kind == ChangeKind.TASK_UNASSIGNED

    def test_empty_assignee_equals_none(self):
        before = DaoTask(id=1, name="x", assigned_to="")
        after = DaoTask(id=1, name="x", assigned_to=None)

        assert diff_task(before, after) == []

    def test_assignee_change_helper(self):
        changes = [ProgressChanged(before=0, after=5), AssigneeChanged(before=None, after="b")]

        assert assignee_change(changes) == AssigneeChanged(before=None, after="b")
        assert assignee_change(changes[:1]) is None


class TestDiffTasks:
    """Test suite for whole checklist comparison."""

    def test_only_common_changed_tasks_are_reported(self):
        before = [DaoTask(id=1, name="a", progress=0), DaoTask(id=2, name="b", progress=0)]
        after = [
            DaoTask(id=2, name="b", progress=30),
            DaoTask(id=1, name="a", progress=0),
            DaoTask(id=9, name="new", progress=80),
        ]

        assert diff_tasks(before, after) == {2: [ProgressChanged(before=0, after=30)]}

    def test_no_changes_yields_empty_mapping(self):
        tasks = [DaoTask(id=1, name="a")]

        assert diff_tasks(tasks, [DaoTask(id=1, name="a")]) == {}
