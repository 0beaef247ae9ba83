"""
Job lifecycle and ServiceM8 status mapping.

Translates a ServiceM8 job record into local job fields: lifecycle phase,
scheduler stage, pipeline status, sales stage and time since the quote was
sent. Everything here is pure and independent of HTTP or storage.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from config import settings
from ..database.models import (
    LifecyclePhaseEnum,
    SchedulerStageEnum,
    JobStatusEnum,
    SalesStageEnum,
)
from ..utils.datetime_utils import parse_servicem8_timestamp

logger = logging.getLogger(__name__)

TERMINAL_LOST_KEYWORDS = ("unsuccessful", "lost", "cancelled", "canceled")
TERMINAL_COMPLETE_KEYWORDS = ("complete", "finished", "done")
WORK_ORDER_KEYWORDS = ("work order", "in progress", "scheduled", "completed", "job complete")

STAFF_ASSIGNED_FIELDS = ("customfield_staff_assigned", "Staff Assigned", "staff_assigned")

DEFAULT_DESCRIPTION = "PVC Fencing Installation"
UNKNOWN_CUSTOMER = "Unknown Customer"
UNASSIGNED = "Unassigned"


@dataclass(frozen=True)
class StatusMapping:
    """The local phase/stage/status triple for one ServiceM8 status string."""
    lifecycle_phase: LifecyclePhaseEnum
    scheduler_stage: SchedulerStageEnum
    status: JobStatusEnum


@dataclass(frozen=True)
class QuoteAge:
    """
    Time since a quote was sent.

    Exactly one unit is meaningful: under 24h, hours is set and days is 0;
    from 24h on, days is set and hours is None. Both None when unknown.
    """
    hours: Optional[int] = None
    days: Optional[int] = None


@dataclass(frozen=True)
class PipelineFields:
    status: JobStatusEnum
    scheduler_stage: SchedulerStageEnum
    sales_stage: Optional[SalesStageEnum]


def map_servicem8_status(status_text: Optional[str]) -> StatusMapping:
    """
    Map ServiceM8 status text to (phase, scheduler stage, status).

    Checks run in order: lost/cancelled, complete, work-order keywords,
    quote/estimate, lead. Anything unrecognised is treated as a pending quote.
    """
    text = (status_text or "").lower()

    if any(k in text for k in TERMINAL_LOST_KEYWORDS):
        return StatusMapping(LifecyclePhaseEnum.QUOTE, SchedulerStageEnum.NEW_JOBS_WON, JobStatusEnum.UNSUCCESSFUL)

    if any(k in text for k in TERMINAL_COMPLETE_KEYWORDS):
        return StatusMapping(
            LifecyclePhaseEnum.WORK_ORDER, SchedulerStageEnum.RECENTLY_COMPLETED, JobStatusEnum.COMPLETE
        )

    if any(k in text for k in WORK_ORDER_KEYWORDS):
        if "progress" in text or "production" in text:
            return StatusMapping(
                LifecyclePhaseEnum.WORK_ORDER, SchedulerStageEnum.IN_PRODUCTION, JobStatusEnum.IN_PRODUCTION
            )
        if "scheduled" in text:
            return StatusMapping(
                LifecyclePhaseEnum.WORK_ORDER, SchedulerStageEnum.IN_PRODUCTION, JobStatusEnum.SCHEDULED
            )
        return StatusMapping(LifecyclePhaseEnum.WORK_ORDER, SchedulerStageEnum.NEW_JOBS_WON, JobStatusEnum.WORK_ORDER)

    if "quote" in text or "estimate" in text:
        return StatusMapping(LifecyclePhaseEnum.QUOTE, SchedulerStageEnum.NEW_JOBS_WON, JobStatusEnum.QUOTE_PENDING)

    if "lead" in text:
        return StatusMapping(LifecyclePhaseEnum.QUOTE, SchedulerStageEnum.NEW_JOBS_WON, JobStatusEnum.NEW_LEAD)

    return StatusMapping(LifecyclePhaseEnum.QUOTE, SchedulerStageEnum.NEW_JOBS_WON, JobStatusEnum.QUOTE_PENDING)


def is_flag_set(value: Any) -> bool:
    """ServiceM8 booleans arrive as true, 1, "1" or "true"."""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def quote_was_sent(quote_sent: Any, quote_sent_stamp: Optional[str]) -> bool:
    """A quote counts as sent only with the flag set and a real sent stamp."""
    return is_flag_set(quote_sent) and parse_servicem8_timestamp(quote_sent_stamp) is not None


def compute_quote_age(
    quote_sent: Any,
    quote_sent_stamp: Optional[str],
    now: Optional[datetime] = None,
    utc_offset_hours: Optional[int] = None,
) -> QuoteAge:
    """
    Hours or days since the quote was sent.

    The creation date (quote_date) is never used. Blank, zero or malformed
    stamps give an empty QuoteAge rather than raising.
    """
    if not is_flag_set(quote_sent):
        return QuoteAge()

    sent_at = parse_servicem8_timestamp(quote_sent_stamp, utc_offset_hours)
    if sent_at is None:
        return QuoteAge()

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    # Clock skew can put the stamp slightly in the future
    elapsed_hours = max(0.0, (now - sent_at).total_seconds() / 3600)
    if elapsed_hours < 24:
        return QuoteAge(hours=math.floor(elapsed_hours), days=0)
    return QuoteAge(hours=None, days=math.floor(elapsed_hours / 24))


def derive_pipeline_fields(
    mapping: StatusMapping,
    sent: bool,
    age: QuoteAge,
    fresh_days: Optional[int] = None,
) -> PipelineFields:
    """
    Refine quote-phase jobs by whether the quote has gone out.

    The leads pipeline keys off status (new_lead / quote_sent); the quotes
    pipeline keys off sales_stage (fresh / awaiting_reply). Work orders and
    unsuccessful quotes pass through unchanged with no sales stage.
    """
    if mapping.lifecycle_phase != LifecyclePhaseEnum.QUOTE or mapping.status == JobStatusEnum.UNSUCCESSFUL:
        return PipelineFields(mapping.status, mapping.scheduler_stage, None)

    if not sent:
        return PipelineFields(JobStatusEnum.NEW_LEAD, mapping.scheduler_stage, SalesStageEnum.NEW_LEAD)

    if fresh_days is None:
        fresh_days = settings.fresh_quote_days
    if age.days is not None and age.days <= fresh_days:
        sales_stage = SalesStageEnum.FRESH
    else:
        sales_stage = SalesStageEnum.AWAITING_REPLY
    return PipelineFields(JobStatusEnum.QUOTE_SENT, SchedulerStageEnum.QUOTES_SENT, sales_stage)


def resolve_customer_name(
    job: Mapping[str, Any],
    job_contacts: Mapping[str, Mapping[str, str]],
    companies: Mapping[str, str],
) -> str:
    """Job contact's full name, else the company name, else a placeholder."""
    contact = job_contacts.get(job.get("uuid", ""))
    if contact:
        full_name = " ".join(p for p in (contact.get("first"), contact.get("last")) if p).strip()
        if full_name:
            return full_name

    company_name = companies.get(job.get("company_uuid") or "")
    if company_name:
        return company_name
    return UNKNOWN_CUSTOMER


def resolve_staff_assigned(custom_fields: Optional[Mapping[str, Any]]) -> str:
    """Read the "Staff Assigned" custom field under any of its known spellings."""
    if not custom_fields:
        return UNASSIGNED
    for field_name in STAFF_ASSIGNED_FIELDS:
        value = custom_fields.get(field_name)
        if value:
            return str(value)
    return UNASSIGNED


def parse_quote_value(raw: Any) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def map_servicem8_job(
    record: Mapping[str, Any],
    customer_name: Optional[str] = None,
    staff_assigned: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Build the job upsert dict for one ServiceM8 job record.

    Only ServiceM8-sourced columns are included; local scheduling fields keep
    their column defaults on insert and are left alone on update.
    """
    mapping = map_servicem8_status(record.get("status"))
    sent = quote_was_sent(record.get("quote_sent"), record.get("quote_sent_stamp"))
    age = compute_quote_age(record.get("quote_sent"), record.get("quote_sent_stamp"), now)
    pipeline = derive_pipeline_fields(mapping, sent, age)

    generated_id = record.get("generated_job_id")
    address = record.get("job_address") or record.get("billing_address") or "No Address"

    return {
        "servicem8_uuid": record["uuid"],
        "job_code": f"#{generated_id}" if generated_id else "#N/A",
        "customer_name": customer_name or UNKNOWN_CUSTOMER,
        "address": address,
        "description": record.get("job_description") or DEFAULT_DESCRIPTION,
        "quote_value": parse_quote_value(record.get("total_invoice_amount")),
        "lifecycle_phase": mapping.lifecycle_phase.value,
        "status": pipeline.status.value,
        "scheduler_stage": pipeline.scheduler_stage.value,
        "sales_stage": pipeline.sales_stage.value if pipeline.sales_stage else None,
        "days_since_quote_sent": age.days,
        "hours_since_quote_sent": age.hours,
        "assigned_staff": staff_assigned or UNASSIGNED,
        "last_note": record.get("work_done_description") or "",
    }


def extract_custom_fields(record: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Collect custom field values from a job fetched with $expand=customfield_values.

    Values come from the customfield_values list, plus any top-level key that
    looks like a staff assignment field.
    """
    values: Dict[str, Any] = {}
    expanded: List[Mapping[str, Any]] = record.get("customfield_values") or []
    if isinstance(expanded, list):
        for item in expanded:
            if item.get("field_name") and item.get("value"):
                values[item["field_name"]] = item["value"]

    for key, value in record.items():
        if ("Staff" in key or "staff" in key or "Assigned" in key) and value:
            values[key] = value
    return values
