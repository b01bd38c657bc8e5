"""
Outbound service ports used by job handlers.

Email, notifications, push, SMS, lead storage, enrichment and CRM are
external systems. Handlers depend only on these small protocols; the
stand-ins below log what would be sent and keep it in memory, which is what
the workers run with until real providers are wired in.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field

from leadflow.kernel.time import utc_now

logger = structlog.get_logger()


class LeadRecord(BaseModel):
    """The slice of a lead that background jobs read and write."""

    id: str
    organization_id: str
    name: str
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    position: str | None = None
    source: str | None = None
    status: str = "NEW"
    value: float | None = None
    submissions_count: int = 0
    score: int | None = None
    enrichment: dict[str, Any] = Field(default_factory=dict)
    crm_id: str | None = None
    last_synced_at: datetime | None = None


class EmailSender(Protocol):
    async def send(
        self,
        *,
        to: str,
        subject: str,
        template: str,
        data: dict[str, Any],
    ) -> None:
        ...

    async def send_bulk(
        self,
        *,
        to: list[str],
        subject: str,
        template: str,
        data: dict[str, Any],
    ) -> None:
        ...


class NotificationStore(Protocol):
    async def create(
        self,
        *,
        user_id: str,
        title: str,
        message: str,
        action_url: str | None,
        notification_type: str,
    ) -> str:
        ...


class PushSender(Protocol):
    async def send(self, *, user_id: str, title: str, message: str, data: dict[str, Any]) -> None:
        ...


class SmsSender(Protocol):
    async def send(self, *, user_id: str, message: str) -> None:
        ...


class LeadRepository(Protocol):
    async def get(self, lead_id: str, organization_id: str) -> LeadRecord | None:
        ...

    async def save(self, lead: LeadRecord) -> LeadRecord:
        ...


class EnrichmentProvider(Protocol):
    async def enrich(self, *, email: str | None, company: str | None) -> dict[str, Any]:
        ...


class CrmClient(Protocol):
    async def upsert_contact(self, lead: LeadRecord, custom_fields: dict[str, Any]) -> str:
        """Create or update the contact and return its CRM id."""
        ...


class OrganizationDirectory(Protocol):
    async def get_manager_email(self, organization_id: str) -> str | None:
        ...

    async def get_contact_email(self, organization_id: str) -> str | None:
        ...


# =============================================================================
# In-process stand-ins
# =============================================================================


class LoggingEmailSender:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(
        self,
        *,
        to: str,
        subject: str,
        template: str,
        data: dict[str, Any],
    ) -> None:
        self.sent.append({"to": to, "subject": subject, "template": template, "data": data})
        logger.info("Email sent", to=to, subject=subject, template=template)

    async def send_bulk(
        self,
        *,
        to: list[str],
        subject: str,
        template: str,
        data: dict[str, Any],
    ) -> None:
        for recipient in to:
            self.sent.append(
                {"to": recipient, "subject": subject, "template": template, "data": data}
            )
        logger.info("Bulk email sent", recipients=len(to), subject=subject, template=template)


class InMemoryNotificationStore:
    def __init__(self) -> None:
        self.notifications: list[dict[str, Any]] = []

    async def create(
        self,
        *,
        user_id: str,
        title: str,
        message: str,
        action_url: str | None,
        notification_type: str,
    ) -> str:
        notification_id = uuid4().hex
        self.notifications.append(
            {
                "id": notification_id,
                "user_id": user_id,
                "type": notification_type,
                "title": title,
                "message": message,
                "action_url": action_url,
                "read": False,
                "created_at": utc_now(),
            }
        )
        return notification_id


class LoggingPushSender:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(self, *, user_id: str, title: str, message: str, data: dict[str, Any]) -> None:
        self.sent.append({"user_id": user_id, "title": title, "message": message, "data": data})
        logger.info("Push notification sent", user_id=user_id, title=title)


class LoggingSmsSender:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(self, *, user_id: str, message: str) -> None:
        self.sent.append({"user_id": user_id, "message": message})
        logger.info("SMS sent", user_id=user_id)


class InMemoryLeadRepository:
    def __init__(self, leads: list[LeadRecord] | None = None) -> None:
        self._lock = threading.Lock()
        self._leads: dict[tuple[str, str], LeadRecord] = {}
        for lead in leads or []:
            self._leads[(lead.organization_id, lead.id)] = lead

    async def get(self, lead_id: str, organization_id: str) -> LeadRecord | None:
        with self._lock:
            lead = self._leads.get((organization_id, lead_id))
            return lead.model_copy(deep=True) if lead else None

    async def save(self, lead: LeadRecord) -> LeadRecord:
        with self._lock:
            self._leads[(lead.organization_id, lead.id)] = lead.model_copy(deep=True)
        return lead


class NullEnrichmentProvider:
    """Enrichment that finds nothing."""

    async def enrich(self, *, email: str | None, company: str | None) -> dict[str, Any]:
        return {}


class LoggingCrmClient:
    def __init__(self) -> None:
        self.contacts: dict[str, dict[str, Any]] = {}

    async def upsert_contact(self, lead: LeadRecord, custom_fields: dict[str, Any]) -> str:
        crm_id = lead.crm_id or f"crm-{lead.id}"
        self.contacts[crm_id] = {
            "email": lead.email,
            "name": lead.name,
            "company": lead.company,
            "phone": lead.phone,
            "custom_fields": dict(custom_fields),
        }
        logger.info("CRM contact upserted", lead_id=lead.id, crm_id=crm_id)
        return crm_id


class StaticOrganizationDirectory:
    def __init__(
        self,
        managers: dict[str, str] | None = None,
        contacts: dict[str, str] | None = None,
    ) -> None:
        self._managers = dict(managers or {})
        self._contacts = dict(contacts or {})

    async def get_manager_email(self, organization_id: str) -> str | None:
        return self._managers.get(organization_id)

    async def get_contact_email(self, organization_id: str) -> str | None:
        return self._contacts.get(organization_id) or self._managers.get(organization_id)


@dataclass
class Services:
    """Every port a worker process needs."""

    email: EmailSender = field(default_factory=LoggingEmailSender)
    notifications: NotificationStore = field(default_factory=InMemoryNotificationStore)
    push: PushSender = field(default_factory=LoggingPushSender)
    sms: SmsSender = field(default_factory=LoggingSmsSender)
    leads: LeadRepository = field(default_factory=InMemoryLeadRepository)
    enrichment: EnrichmentProvider = field(default_factory=NullEnrichmentProvider)
    crm: CrmClient = field(default_factory=LoggingCrmClient)
    directory: OrganizationDirectory = field(default_factory=StaticOrganizationDirectory)
