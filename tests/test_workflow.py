"""
Workflow definition and instance: publishing rules, transitions, assignment, SLA and escalation.
Run: python -m pytest tests/test_workflow.py -v
"""
import unittest
from datetime import datetime, timedelta, timezone

from schemas.enums import LoanApplicationStatus as S
from schemas.enums import LoanApplicationType, WorkflowAction as A
from schemas.events import WorkflowInstanceCompleted, WorkflowInstanceCreated, WorkflowSLABreached, WorkflowTransitioned
from schemas.result import ErrorKind
from schemas.workflow import WorkflowDefinition, WorkflowInstance
from services.default_workflows import corporate_workflow, retail_workflow

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
ADMIN = "SystemAdministrator"


def _definition(publish=True) -> WorkflowDefinition:
    definition = WorkflowDefinition.create("Test Workflow", LoanApplicationType.CORPORATE).value
    definition.add_stage(S.DRAFT, "Draft", "LoanOfficer", 0, 1)
    definition.add_stage(S.SUBMITTED, "Submitted", "LoanOfficer", 24, 2)
    definition.add_stage(S.BRANCH_REVIEW, "Branch Review", "BranchApprover", 48, 3, requires_comment=True)
    definition.add_stage(S.APPROVED, "Approved", "None", 0, 4, is_terminal=True)
    definition.add_stage(S.REJECTED, "Rejected", "None", 0, 5, is_terminal=True)
    definition.add_transition(S.DRAFT, S.SUBMITTED, A.SUBMIT, "LoanOfficer")
    definition.add_transition(S.SUBMITTED, S.BRANCH_REVIEW, A.MOVE_TO_NEXT_STAGE, "LoanOfficer")
    definition.add_transition(S.BRANCH_REVIEW, S.APPROVED, A.APPROVE, "BranchApprover", requires_comment=True)
    definition.add_transition(S.BRANCH_REVIEW, S.REJECTED, A.REJECT, "BranchApprover", requires_comment=True)
    definition.add_transition(S.BRANCH_REVIEW, S.SUBMITTED, A.RETURN, "BranchApprover")
    definition.add_transition(S.BRANCH_REVIEW, S.BRANCH_REVIEW, A.REQUEST_INFO, "BranchApprover")
    if publish:
        assert definition.publish().ok
    return definition


def _instance_at_branch_review(definition):
    instance = WorkflowInstance.create("loan-1", definition, "officer-1", now=NOW).value
    instance.transition(definition, A.SUBMIT, S.SUBMITTED, "officer-1", now=NOW)
    instance.transition(definition, A.MOVE_TO_NEXT_STAGE, S.BRANCH_REVIEW, "officer-1", now=NOW)
    instance.pull_events()
    return instance


class TestWorkflowDefinition(unittest.TestCase):
    def test_publish_rejects_stage_without_outgoing_transition(self):
        definition = WorkflowDefinition.create("Broken", LoanApplicationType.RETAIL).value
        definition.add_stage(S.DRAFT, "Draft", "LoanOfficer", 0, 1)
        definition.add_stage(S.SUBMITTED, "Submitted", "LoanOfficer", 4, 2)
        definition.add_transition(S.DRAFT, S.SUBMITTED, A.SUBMIT, "LoanOfficer")

        result = definition.publish()
        self.assertFalse(result.ok)
        self.assertEqual(result.kind, ErrorKind.VALIDATION_ERROR)
        self.assertIn("submitted has no outgoing transitions", result.error)
        self.assertFalse(definition.is_published)

    def test_publish_rejects_ambiguous_action(self):
        definition = _definition(publish=False)
        definition.add_transition(S.DRAFT, S.REJECTED, A.SUBMIT, "LoanOfficer")
        result = definition.publish()
        self.assertFalse(result.ok)
        self.assertIn("Ambiguous", result.error)

    def test_published_definition_is_immutable(self):
        definition = _definition()
        result = definition.add_stage(S.CANCELLED, "Cancelled", "None", 0, 9, is_terminal=True)
        self.assertEqual(result.kind, ErrorKind.INVALID_STATE_TRANSITION)
        result = definition.add_transition(S.DRAFT, S.REJECTED, A.CANCEL, "LoanOfficer")
        self.assertEqual(result.kind, ErrorKind.INVALID_STATE_TRANSITION)

    def test_transition_requires_existing_stages(self):
        definition = WorkflowDefinition.create("Partial", LoanApplicationType.RETAIL).value
        definition.add_stage(S.DRAFT, "Draft", "LoanOfficer", 0, 1)
        result = definition.add_transition(S.DRAFT, S.SUBMITTED, A.SUBMIT, "LoanOfficer")
        self.assertEqual(result.kind, ErrorKind.NOT_FOUND)

    def test_initial_stage_is_lowest_sort_order(self):
        definition = WorkflowDefinition.create("Unordered", LoanApplicationType.RETAIL).value
        definition.add_stage(S.SUBMITTED, "Submitted", "LoanOfficer", 4, 5)
        definition.add_stage(S.DRAFT, "Draft", "LoanOfficer", 0, 2)
        self.assertEqual(definition.initial_stage.status, S.DRAFT)

    def test_default_workflows_publish(self):
        for build in (corporate_workflow, retail_workflow):
            result = build()
            self.assertTrue(result.ok, result.error)
            self.assertTrue(result.value.is_published)
            self.assertEqual(result.value.initial_stage.status, S.DRAFT)
            self.assertEqual(result.value.validate_configuration(), [])


class TestWorkflowInstance(unittest.TestCase):
    def test_create_starts_at_initial_stage(self):
        definition = _definition()
        instance = WorkflowInstance.create("loan-1", definition, "officer-1", now=NOW).value

        self.assertEqual(instance.current_status, S.DRAFT)
        self.assertEqual(instance.assigned_role, "LoanOfficer")
        self.assertIsNone(instance.sla_due_at)
        self.assertEqual(len(instance.transition_history), 1)
        self.assertEqual(instance.transition_history[0].action, A.CREATE)
        self.assertIsNone(instance.transition_history[0].from_status)
        self.assertIsInstance(instance.pending_events[0], WorkflowInstanceCreated)

    def test_create_requires_loan_application(self):
        result = WorkflowInstance.create("  ", _definition(), "officer-1")
        self.assertEqual(result.kind, ErrorKind.VALIDATION_ERROR)

    def test_create_requires_published_definition(self):
        definition = _definition(publish=False)
        definition.add_transition(S.DRAFT, S.REJECTED, A.SUBMIT, "LoanOfficer")
        self.assertTrue(definition.validate_configuration())

        result = WorkflowInstance.create("loan-1", definition, "officer-1", now=NOW)
        self.assertEqual(result.kind, ErrorKind.INVALID_STATE_TRANSITION)
        self.assertIsNone(result.value)

    def test_transition_moves_stage_and_resets_sla(self):
        definition = _definition()
        instance = WorkflowInstance.create("loan-1", definition, "officer-1", now=NOW).value
        later = NOW + timedelta(hours=2)

        result = instance.transition(definition, A.SUBMIT, S.SUBMITTED, "officer-1", now=later)

        self.assertTrue(result.ok)
        self.assertEqual(instance.current_status, S.SUBMITTED)
        self.assertEqual(instance.current_stage_display_name, "Submitted")
        self.assertEqual(instance.entered_current_stage_at, later)
        self.assertEqual(instance.sla_due_at, later + timedelta(hours=24))
        log = instance.transition_history[-1]
        self.assertEqual((log.from_status, log.to_status, log.action), (S.DRAFT, S.SUBMITTED, A.SUBMIT))
        self.assertEqual(log.duration_in_previous_stage, 7200)
        self.assertIsInstance(instance.pending_events[-1], WorkflowTransitioned)

    def test_transition_without_matching_rule_changes_nothing(self):
        definition = _definition()
        instance = WorkflowInstance.create("loan-1", definition, "officer-1", now=NOW).value
        history = len(instance.transition_history)

        result = instance.transition(definition, A.APPROVE, S.APPROVED, "officer-1")

        self.assertEqual(result.kind, ErrorKind.INVALID_STATE_TRANSITION)
        self.assertEqual(instance.current_status, S.DRAFT)
        self.assertEqual(len(instance.transition_history), history)

    def test_required_comment(self):
        definition = _definition()
        instance = _instance_at_branch_review(definition)

        for comment in (None, "", "   "):
            result = instance.transition(definition, A.APPROVE, S.APPROVED, "approver-1", comment=comment)
            self.assertEqual(result.kind, ErrorKind.VALIDATION_ERROR)
        self.assertEqual(instance.current_status, S.BRANCH_REVIEW)

        result = instance.transition(definition, A.APPROVE, S.APPROVED, "approver-1", comment="Good file")
        self.assertTrue(result.ok)

    def test_role_must_match_unless_admin(self):
        definition = _definition()
        instance = _instance_at_branch_review(definition)

        result = instance.transition(
            definition, A.RETURN, S.SUBMITTED, "officer-1", user_role="LoanOfficer", admin_role=ADMIN
        )
        self.assertEqual(result.kind, ErrorKind.INVALID_STATE_TRANSITION)
        self.assertIn("not authorized", result.error)

        result = instance.transition(definition, A.RETURN, S.SUBMITTED, "admin-1", user_role=ADMIN, admin_role=ADMIN)
        self.assertTrue(result.ok)

    def test_terminal_stage_completes_and_blocks_further_transitions(self):
        definition = _definition()
        instance = _instance_at_branch_review(definition)
        done_at = NOW + timedelta(hours=5)

        instance.transition(definition, A.REJECT, S.REJECTED, "approver-1", comment="Weak cashflow", now=done_at)

        self.assertTrue(instance.is_completed)
        self.assertEqual(instance.final_status, S.REJECTED)
        self.assertEqual(instance.completed_at, done_at)
        self.assertIsInstance(instance.pending_events[-1], WorkflowInstanceCompleted)
        for action, to_status in [
            (A.APPROVE, S.APPROVED),
            (A.RETURN, S.SUBMITTED),
            (A.SUBMIT, S.SUBMITTED),
            (A.REOPEN, S.DRAFT),
        ]:
            result = instance.transition(definition, action, to_status, "admin-1", comment="x", user_role=ADMIN)
            self.assertEqual(result.kind, ErrorKind.INVALID_STATE_TRANSITION)
        self.assertEqual(instance.available_actions(definition, ADMIN, ADMIN), [])

    def test_available_actions_filtered_by_role(self):
        definition = _definition()
        instance = _instance_at_branch_review(definition)

        self.assertEqual(instance.available_actions(definition, "LoanOfficer"), [])
        actions = {a.action: a for a in instance.available_actions(definition, "BranchApprover")}
        self.assertEqual(set(actions), {A.APPROVE, A.REJECT, A.RETURN, A.REQUEST_INFO})
        self.assertTrue(actions[A.APPROVE].requires_comment)
        self.assertEqual(actions[A.RETURN].display_name, "Return for Correction")
        self.assertEqual(actions[A.REQUEST_INFO].display_name, "Request Information")
        self.assertEqual(len(instance.available_actions(definition, ADMIN, ADMIN)), 4)

    def test_stage_change_clears_assignment_same_stage_keeps_it(self):
        definition = _definition()
        instance = _instance_at_branch_review(definition)

        instance.assign("approver-1", now=NOW)
        instance.transition(definition, A.REQUEST_INFO, S.BRANCH_REVIEW, "approver-1")
        self.assertEqual(instance.assigned_to_user_id, "approver-1")

        instance.transition(definition, A.RETURN, S.SUBMITTED, "approver-1")
        self.assertIsNone(instance.assigned_to_user_id)
        self.assertIsNone(instance.assigned_at)

    def test_assign_is_idempotent(self):
        definition = _definition()
        instance = WorkflowInstance.create("loan-1", definition, "officer-1", now=NOW).value
        instance.assign("officer-2", "manager-1", now=NOW)
        history = len(instance.transition_history)

        self.assertTrue(instance.assign("officer-2").ok)
        self.assertEqual(len(instance.transition_history), history)
        self.assertEqual(instance.transition_history[-1].performed_by_user_id, "manager-1")

    def test_unassign(self):
        definition = _definition()
        instance = WorkflowInstance.create("loan-1", definition, "officer-1", now=NOW).value
        self.assertEqual(instance.unassign("officer-1").kind, ErrorKind.INVALID_STATE_TRANSITION)
        instance.assign("officer-2")
        self.assertTrue(instance.unassign("officer-1").ok)
        self.assertIsNone(instance.assigned_to_user_id)

    def test_sla_due_at_and_after_deadline(self):
        definition = _definition()
        instance = WorkflowInstance.create("loan-1", definition, "officer-1", now=NOW).value
        self.assertFalse(instance.is_sla_due(NOW + timedelta(days=30)))  # draft has no SLA

        instance.transition(definition, A.SUBMIT, S.SUBMITTED, "officer-1", now=NOW)
        due = NOW + timedelta(hours=24)
        self.assertFalse(instance.is_sla_due(due - timedelta(seconds=1)))
        self.assertTrue(instance.is_sla_due(due))
        self.assertEqual(instance.remaining_sla(due + timedelta(hours=1)), timedelta(0))
        self.assertEqual(instance.remaining_sla(NOW + timedelta(hours=20)), timedelta(hours=4))

    def test_breach_and_escalation_reset_on_transition(self):
        definition = _definition()
        instance = WorkflowInstance.create("loan-1", definition, "officer-1", now=NOW).value
        instance.transition(definition, A.SUBMIT, S.SUBMITTED, "officer-1", now=NOW)
        instance.pull_events()

        instance.mark_sla_breached()
        instance.mark_sla_breached()
        breaches = [e for e in instance.pull_events() if isinstance(e, WorkflowSLABreached)]
        self.assertEqual(len(breaches), 1)

        self.assertTrue(instance.escalate("system", "Overdue", max_level=2).ok)
        self.assertTrue(instance.escalate("system", "Still overdue", max_level=2).ok)
        result = instance.escalate("system", "Again", max_level=2)
        self.assertEqual(result.kind, ErrorKind.INVALID_STATE_TRANSITION)
        self.assertEqual(instance.escalation_level, 2)
        self.assertEqual(instance.escalate("system", " ").kind, ErrorKind.VALIDATION_ERROR)

        instance.transition(definition, A.MOVE_TO_NEXT_STAGE, S.BRANCH_REVIEW, "officer-1", now=NOW)
        self.assertEqual(instance.escalation_level, 0)
        self.assertFalse(instance.is_sla_breached)

    def test_state_snapshot_restores_instance(self):
        definition = _definition()
        instance = _instance_at_branch_review(definition)
        restored = WorkflowInstance.from_state(instance.to_state(), version=3)

        self.assertEqual(restored.version, 3)
        self.assertEqual(restored.current_status, S.BRANCH_REVIEW)
        self.assertEqual(restored.sla_due_at, instance.sla_due_at)
        self.assertEqual(len(restored.transition_history), 3)
        self.assertEqual(restored.pending_events, [])


if __name__ == "__main__":
    unittest.main()
