from models.advisory import CreditAdvisoryRecord
from models.committee import CommitteeReviewRecord
from models.notification import Notification
from models.workflow import WorkflowDefinitionRecord, WorkflowInstanceRecord

__all__ = [
    "CommitteeReviewRecord",
    "CreditAdvisoryRecord",
    "Notification",
    "WorkflowDefinitionRecord",
    "WorkflowInstanceRecord",
]
