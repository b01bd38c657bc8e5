"""Default reactions to lead and submission events."""

from leadflow.events.handlers.lead import LeadEventHandlers
from leadflow.events.handlers.submission import SubmissionEventHandlers

__all__ = ["LeadEventHandlers", "SubmissionEventHandlers"]
