"""
Lead queue handlers.

Leads can be deleted between enqueue and execution; a missing lead is a
skip, not a failure, so deleted leads never burn through retries.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError

from leadflow.jobs.models import Job
from leadflow.jobs.queues import LeadJobData, LeadJobType
from leadflow.jobs.worker import JobHandler
from leadflow.kernel.errors import JobValidationError
from leadflow.kernel.time import utc_now
from leadflow.services import (
    CrmClient,
    EmailSender,
    EnrichmentProvider,
    LeadRecord,
    LeadRepository,
    OrganizationDirectory,
)

logger = structlog.get_logger()

DEFAULT_FOLLOW_UP_TEMPLATE = "default-follow-up"


def compute_lead_score(lead: LeadRecord) -> int:
    """
    Rule-based lead score.

    +10 gmail address, +20 has a company, +30 manager position,
    +15 has submissions, +25 value above 10000.
    """
    score = 0
    if lead.email and "@gmail.com" in lead.email.lower():
        score += 10
    if lead.company:
        score += 20
    if lead.position and "manager" in lead.position.lower():
        score += 30
    if lead.submissions_count > 0:
        score += 15
    if lead.value is not None and lead.value > 10000:
        score += 25
    return score


def parse_lead_job(job: Job) -> LeadJobData:
    try:
        return LeadJobData.model_validate(job.data)
    except ValidationError as exc:
        raise JobValidationError(
            message=f"Malformed lead job payload: {job.id}",
            meta={"job_id": job.id, "errors": exc.errors(include_url=False)},
        ) from exc


class LeadJobHandlers:
    def __init__(
        self,
        leads: LeadRepository,
        enrichment: EnrichmentProvider,
        crm: CrmClient,
        email: EmailSender,
        directory: OrganizationDirectory,
    ) -> None:
        self.leads = leads
        self.enrichment = enrichment
        self.crm = crm
        self.email = email
        self.directory = directory

    def handlers(self) -> dict[str, JobHandler]:
        return {
            LeadJobType.ENRICH_LEAD_DATA.value: self.enrich_lead_data,
            LeadJobType.CALCULATE_LEAD_SCORE.value: self.calculate_lead_score,
            LeadJobType.SYNC_TO_CRM.value: self.sync_lead_to_crm,
            LeadJobType.SEND_FOLLOW_UP.value: self.send_follow_up,
        }

    async def _load(self, job: Job) -> tuple[LeadJobData, LeadRecord | None]:
        payload = parse_lead_job(job)
        lead = await self.leads.get(payload.lead_id, payload.organization_id)
        if lead is None:
            logger.warning(
                "Lead not found, skipping job",
                job_id=job.id,
                job_type=job.name,
                lead_id=payload.lead_id,
                organization_id=payload.organization_id,
            )
        return payload, lead

    async def enrich_lead_data(self, job: Job) -> dict[str, Any]:
        payload, lead = await self._load(job)
        if lead is None:
            return {"lead_id": payload.lead_id, "skipped": "lead_not_found"}

        enriched = await self.enrichment.enrich(email=lead.email, company=lead.company)
        lead.enrichment.update(payload.data)
        lead.enrichment.update(enriched)
        await self.leads.save(lead)
        return {"lead_id": lead.id, "fields": sorted(lead.enrichment)}

    async def calculate_lead_score(self, job: Job) -> dict[str, Any]:
        payload, lead = await self._load(job)
        if lead is None:
            return {"lead_id": payload.lead_id, "skipped": "lead_not_found"}

        lead.score = compute_lead_score(lead)
        await self.leads.save(lead)
        logger.info("Lead score calculated", lead_id=lead.id, score=lead.score)
        return {"lead_id": lead.id, "score": lead.score}

    async def sync_lead_to_crm(self, job: Job) -> dict[str, Any]:
        payload, lead = await self._load(job)
        if lead is None:
            return {"lead_id": payload.lead_id, "skipped": "lead_not_found"}

        custom_fields = {"source": lead.source, "status": lead.status, **payload.data}
        lead.crm_id = await self.crm.upsert_contact(lead, custom_fields)
        lead.last_synced_at = utc_now()
        await self.leads.save(lead)
        return {"lead_id": lead.id, "crm_id": lead.crm_id}

    async def send_follow_up(self, job: Job) -> dict[str, Any]:
        payload, lead = await self._load(job)
        if lead is None:
            return {"lead_id": payload.lead_id, "skipped": "lead_not_found"}
        if not lead.email:
            logger.info("Lead has no email, follow-up skipped", lead_id=lead.id)
            return {"lead_id": lead.id, "skipped": "no_email"}

        data = dict(payload.data)
        template = data.pop("template", None) or DEFAULT_FOLLOW_UP_TEMPLATE
        sender = await self.directory.get_contact_email(payload.organization_id)
        await self.email.send(
            to=lead.email,
            subject=f"Follow-up: {lead.name}",
            template=template,
            data={"lead_name": lead.name, "reply_to": sender, **data},
        )
        return {"lead_id": lead.id, "template": template}
