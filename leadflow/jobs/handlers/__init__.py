"""Job handler functions, grouped per queue."""

from leadflow.jobs.handlers.email import EmailJobHandlers
from leadflow.jobs.handlers.lead import LeadJobHandlers, compute_lead_score
from leadflow.jobs.handlers.notification import NotificationJobHandlers

__all__ = [
    "EmailJobHandlers",
    "LeadJobHandlers",
    "NotificationJobHandlers",
    "compute_lead_score",
]
