"""
Standard workflow definitions for corporate and retail loan applications.
Stage rows: (status, display name, description, assigned role, SLA hours, sort order, requires comment, terminal).
Transition rows: (from, to, action, required role, requires comment).
"""
from __future__ import annotations

from schemas.enums import LoanApplicationStatus as S
from schemas.enums import LoanApplicationType, WorkflowAction as A
from schemas.result import Result
from schemas.workflow import WorkflowDefinition

CORPORATE_STAGES = [
    (S.DRAFT, "Draft", "Application being prepared", "LoanOfficer", 0, 1, False, False),
    (S.SUBMITTED, "Submitted", "Submitted for processing", "LoanOfficer", 4, 2, False, False),
    (S.DATA_GATHERING, "Data Gathering", "Collecting required documents", "LoanOfficer", 24, 3, False, False),
    (S.BRANCH_REVIEW, "Branch Review", "Awaiting branch approval", "BranchApprover", 8, 4, True, False),
    (S.BRANCH_APPROVED, "Branch Approved", "Approved by branch, awaiting credit checks", "System", 1, 5, False, False),
    (S.BRANCH_RETURNED, "Returned", "Returned for corrections", "LoanOfficer", 24, 6, False, False),
    (S.BRANCH_REJECTED, "Branch Rejected", "Rejected at branch level", "None", 0, 7, False, True),
    (S.CREDIT_ANALYSIS, "Credit Analysis", "Credit checks in progress", "System", 48, 8, False, False),
    (S.HO_REVIEW, "HO Review", "Head Office review", "CreditOfficer", 24, 9, True, False),
    (S.COMMITTEE_CIRCULATION, "Committee Circulation", "Under committee review", "CommitteeMember", 72, 10, False, False),
    (S.COMMITTEE_APPROVED, "Committee Approved", "Approved by committee", "FinalApprover", 8, 11, False, False),
    (S.COMMITTEE_REJECTED, "Committee Rejected", "Rejected by committee", "None", 0, 12, False, True),
    (S.APPROVED, "Final Approved", "Final approval granted", "Operations", 4, 13, False, False),
    (S.REJECTED, "Rejected", "Application rejected", "None", 0, 14, False, True),
    (S.OFFER_GENERATED, "Offer Generated", "Offer letter ready", "Operations", 24, 15, False, False),
    (S.OFFER_ACCEPTED, "Offer Accepted", "Customer accepted offer", "Operations", 48, 16, False, False),
    (S.DISBURSED, "Disbursed", "Loan disbursed", "None", 0, 17, False, True),
]

CORPORATE_TRANSITIONS = [
    (S.DRAFT, S.SUBMITTED, A.SUBMIT, "LoanOfficer", False),
    (S.SUBMITTED, S.DATA_GATHERING, A.MOVE_TO_NEXT_STAGE, "LoanOfficer", False),
    (S.DATA_GATHERING, S.BRANCH_REVIEW, A.SUBMIT, "LoanOfficer", False),
    (S.BRANCH_REVIEW, S.BRANCH_APPROVED, A.APPROVE, "BranchApprover", True),
    (S.BRANCH_REVIEW, S.BRANCH_RETURNED, A.RETURN, "BranchApprover", True),
    (S.BRANCH_REVIEW, S.BRANCH_REJECTED, A.REJECT, "BranchApprover", True),
    (S.BRANCH_RETURNED, S.BRANCH_REVIEW, A.SUBMIT, "LoanOfficer", False),
    (S.BRANCH_APPROVED, S.CREDIT_ANALYSIS, A.MOVE_TO_NEXT_STAGE, "System", False),
    (S.CREDIT_ANALYSIS, S.HO_REVIEW, A.MOVE_TO_NEXT_STAGE, "System", False),
    (S.HO_REVIEW, S.COMMITTEE_CIRCULATION, A.APPROVE, "CreditOfficer", True),
    (S.HO_REVIEW, S.REJECTED, A.REJECT, "CreditOfficer", True),
    (S.HO_REVIEW, S.BRANCH_REVIEW, A.RETURN, "CreditOfficer", True),
    (S.COMMITTEE_CIRCULATION, S.COMMITTEE_APPROVED, A.APPROVE, "CommitteeMember", True),
    (S.COMMITTEE_CIRCULATION, S.COMMITTEE_REJECTED, A.REJECT, "CommitteeMember", True),
    (S.COMMITTEE_APPROVED, S.APPROVED, A.APPROVE, "FinalApprover", True),
    (S.COMMITTEE_APPROVED, S.REJECTED, A.REJECT, "FinalApprover", True),
    (S.APPROVED, S.OFFER_GENERATED, A.MOVE_TO_NEXT_STAGE, "Operations", False),
    (S.OFFER_GENERATED, S.OFFER_ACCEPTED, A.APPROVE, "Operations", False),
    (S.OFFER_ACCEPTED, S.DISBURSED, A.COMPLETE, "Operations", False),
]

# Retail loans skip head office and committee; the branch decision is final
RETAIL_STAGES = [
    (S.DRAFT, "Draft", "Application being prepared", "LoanOfficer", 0, 1, False, False),
    (S.SUBMITTED, "Submitted", "Submitted for processing", "LoanOfficer", 4, 2, False, False),
    (S.BRANCH_REVIEW, "Branch Review", "Awaiting branch approval", "BranchApprover", 8, 3, True, False),
    (S.BRANCH_RETURNED, "Returned", "Returned for corrections", "LoanOfficer", 24, 4, False, False),
    (S.BRANCH_REJECTED, "Branch Rejected", "Rejected at branch level", "None", 0, 5, False, True),
    (S.APPROVED, "Approved", "Approved by branch", "Operations", 4, 6, False, False),
    (S.OFFER_GENERATED, "Offer Generated", "Offer letter ready", "Operations", 24, 7, False, False),
    (S.OFFER_ACCEPTED, "Offer Accepted", "Customer accepted offer", "Operations", 48, 8, False, False),
    (S.DISBURSED, "Disbursed", "Loan disbursed", "None", 0, 9, False, True),
    (S.CANCELLED, "Cancelled", "Customer withdrew the application", "None", 0, 10, False, True),
]

RETAIL_TRANSITIONS = [
    (S.DRAFT, S.SUBMITTED, A.SUBMIT, "LoanOfficer", False),
    (S.SUBMITTED, S.BRANCH_REVIEW, A.MOVE_TO_NEXT_STAGE, "LoanOfficer", False),
    (S.BRANCH_REVIEW, S.APPROVED, A.APPROVE, "BranchApprover", True),
    (S.BRANCH_REVIEW, S.BRANCH_RETURNED, A.RETURN, "BranchApprover", True),
    (S.BRANCH_REVIEW, S.BRANCH_REJECTED, A.REJECT, "BranchApprover", True),
    (S.BRANCH_RETURNED, S.BRANCH_REVIEW, A.SUBMIT, "LoanOfficer", False),
    (S.BRANCH_RETURNED, S.CANCELLED, A.CANCEL, "LoanOfficer", True),
    (S.APPROVED, S.OFFER_GENERATED, A.MOVE_TO_NEXT_STAGE, "Operations", False),
    (S.OFFER_GENERATED, S.OFFER_ACCEPTED, A.APPROVE, "Operations", False),
    (S.OFFER_GENERATED, S.CANCELLED, A.CANCEL, "Operations", True),
    (S.OFFER_ACCEPTED, S.DISBURSED, A.COMPLETE, "Operations", False),
]


def build_definition(name: str, description: str, application_type: LoanApplicationType, stages, transitions) -> Result:
    """Assemble and publish a definition; the first failing row is returned as the failure."""
    created = WorkflowDefinition.create(name, application_type, description)
    if not created:
        return created
    definition = created.value
    for status, display_name, desc, role, sla_hours, order, requires_comment, is_terminal in stages:
        added = definition.add_stage(
            status,
            display_name,
            role,
            sla_hours,
            order,
            description=desc,
            requires_comment=requires_comment,
            is_terminal=is_terminal,
        )
        if not added:
            return added
    for from_status, to_status, action, role, requires_comment in transitions:
        added = definition.add_transition(from_status, to_status, action, role, requires_comment=requires_comment)
        if not added:
            return added
    published = definition.publish()
    if not published:
        return published
    return Result.success(definition)


def corporate_workflow() -> Result:
    return build_definition(
        "Corporate Loan Workflow",
        "Standard approval workflow for corporate loan applications",
        LoanApplicationType.CORPORATE,
        CORPORATE_STAGES,
        CORPORATE_TRANSITIONS,
    )


def retail_workflow() -> Result:
    return build_definition(
        "Retail Loan Workflow",
        "Branch-level approval workflow for retail loan applications",
        LoanApplicationType.RETAIL,
        RETAIL_STAGES,
        RETAIL_TRANSITIONS,
    )


DEFAULT_WORKFLOWS = {
    LoanApplicationType.CORPORATE: corporate_workflow,
    LoanApplicationType.RETAIL: retail_workflow,
}
