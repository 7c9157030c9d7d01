# churn_guard/sync.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from .config import HubSpotSettings, load_settings
from .errors import CRMError, ErrorKind, InvalidArgument
from .hubspot import HubSpotClient, path_segment
from .retry import RetryPolicy
from .scenarios import EMPTY_RESULTS, CalculatorResults
from .scoring import LifecycleStage, lead_score, lifecycle_stage

logger = logging.getLogger(__name__)

# Deal heuristic: 25% of the annual loss captured over 3 years, only above $50K.
DEAL_THRESHOLD = 50_000
DEAL_CAPTURE_RATE = 0.25
DEAL_HORIZON_YEARS = 3
DEAL_PIPELINE = "Sales Pipeline"
DEAL_STAGE = "appointmentscheduled"
DEAL_NAME_SUFFIX = "ChurnGuard Opportunity"
DEFAULT_PROSPECT_NAME = "ChurnGuard Prospect"
CONTACT_TO_DEAL_ASSOCIATION_TYPE = 3
ASSOCIATION_CATEGORY = "HUBSPOT_DEFINED"

LOOKUP_PROPERTIES = "firstname,lastname,company"
DEAL_CONTACT_PROPERTIES = "company,firstname,lastname"

CONSENT_TEXT = "User consented via Churn Calculator submission."
MARKETING_SUBSCRIPTION_TYPE_ID = 999

SUCCESS_MESSAGE = "Contact saved to HubSpot successfully."
FALLBACK_MESSAGE = "We saved your email while we resolve a HubSpot connection hiccup."
FAILURE_MESSAGE = (
    "We could not save your details. Please try again later or reach out to hello@churnguard.ai."
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class SyncState(str, Enum):
    PENDING = "pending"
    CONTACT_UPSERTED = "contact_upserted"
    LIST_UPDATED = "list_updated"
    FORM_SUBMITTED = "form_submitted"
    SUCCEEDED = "succeeded"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass(frozen=True)
class LeadFormData:
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    store_name: Optional[str] = None
    total_customers: Optional[int] = None
    average_order_value: Optional[float] = None
    churn_rate: Optional[float] = None
    lifecycle_stage: Optional[LifecycleStage] = None
    metadata: Optional[Mapping[str, Any]] = None

    @property
    def company_name(self) -> Optional[str]:
        return self.company or self.store_name


@dataclass(frozen=True)
class SecondaryOutcome:
    operation: str
    success: bool
    message: str
    skipped: bool = False


@dataclass
class SubmitResult:
    success: bool
    fallback_used: bool
    message: str
    contact_id: Optional[str] = None
    state: SyncState = SyncState.PENDING
    error_kind: Optional[ErrorKind] = None
    secondary: List[SecondaryOutcome] = field(default_factory=list)


@dataclass(frozen=True)
class DealResult:
    success: bool
    message: str
    deal_id: Optional[str] = None
    skipped: bool = False


@dataclass(frozen=True)
class EmailSequenceResult:
    success: bool
    message: str
    skipped: bool = False


# -----------------------
# Payload builders
# -----------------------
def normalize_email(email: str) -> str:
    """Idempotency key for the contact upsert."""
    key = (email or "").strip().lower()
    if not key:
        raise InvalidArgument("Email is required to create or update a HubSpot contact.")
    if not _EMAIL_RE.match(key):
        raise InvalidArgument(f"Email does not look like an address: {email!r}")
    return key


def _format_number(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _format_money(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return f"{value:.2f}"


def _iso_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_contact_properties(
    form_data: LeadFormData,
    results: CalculatorResults,
    completed_at: Optional[datetime] = None,
) -> Dict[str, str]:
    score = lead_score(results.annual_revenue_lost)
    stage = lifecycle_stage(score, form_data.lifecycle_stage)

    properties = {
        "email": normalize_email(form_data.email),
        "firstname": form_data.first_name,
        "lastname": form_data.last_name,
        "company": form_data.company_name,
        "annual_revenue_lost": _format_money(results.annual_revenue_lost),
        "churn_rate": _format_number(form_data.churn_rate),
        "total_customers": _format_number(form_data.total_customers),
        "average_order_value": _format_money(form_data.average_order_value),
        "calculator_completed_date": _iso_timestamp(completed_at or _utcnow()),
        "lead_score": str(score),
        "lifecyclestage": stage.value,
    }
    return {k: v for k, v in properties.items() if v is not None}


def build_form_fields(form_data: LeadFormData, results: CalculatorResults) -> List[Dict[str, str]]:
    fields = [
        ("email", form_data.email),
        ("firstname", form_data.first_name),
        ("lastname", form_data.last_name),
        ("company", form_data.company_name),
        ("annual_revenue_lost", _format_money(results.annual_revenue_lost)),
        ("average_order_value", _format_money(form_data.average_order_value)),
        ("total_customers", _format_number(form_data.total_customers)),
        ("churn_rate", _format_number(form_data.churn_rate)),
    ]
    return [
        {"name": name, "value": str(value)}
        for name, value in fields
        if value is not None and str(value).strip()
    ]


def build_form_payload(form_data: LeadFormData, results: CalculatorResults) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "fields": build_form_fields(form_data, results),
        "legalConsentOptions": {
            "consent": {
                "consentToProcess": True,
                "text": CONSENT_TEXT,
                "communications": [
                    {
                        "value": True,
                        "subscriptionTypeId": MARKETING_SUBSCRIPTION_TYPE_ID,
                        "text": "Marketing communications",
                    }
                ],
            }
        },
    }
    metadata = form_data.metadata or {}
    if "pageUri" in metadata:
        payload["context"] = {"pageUri": str(metadata["pageUri"])}
    return payload


def deal_amount(annual_revenue_lost: float) -> float:
    return annual_revenue_lost * DEAL_CAPTURE_RATE * DEAL_HORIZON_YEARS


def deal_name(contact_properties: Mapping[str, Any]) -> str:
    full_name = " ".join(
        p for p in (contact_properties.get("firstname"), contact_properties.get("lastname")) if p
    )
    store_name = contact_properties.get("company") or full_name or DEFAULT_PROSPECT_NAME
    return f"{store_name} - {DEAL_NAME_SUFFIX}"


# -----------------------
# Pipeline
# -----------------------
class SyncPipeline:
    """
    Pushes one calculator lead into HubSpot.

    Primary path (retried, fatal on exhaustion):
        contact upsert -> list membership (best-effort) -> form submission
    On primary failure a single email-only form submission is attempted.
    Deal creation and workflow enrollment are separate best-effort operations.
    """

    def __init__(
        self,
        client: HubSpotClient,
        retry: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.client = client
        self.retry = retry or RetryPolicy()
        self.clock = clock

    @property
    def settings(self) -> HubSpotSettings:
        return self.client.settings

    # ---- step 1
    def _lookup_contact(self, email: str) -> Optional[Dict[str, Any]]:
        try:
            found = self.client.get(
                f"/crm/v3/objects/contacts/{path_segment(email)}",
                query={"idProperty": "email", "properties": LOOKUP_PROPERTIES},
            )
        except CRMError as e:
            if e.status == 404:
                return None
            raise
        if not isinstance(found, dict):
            raise CRMError("HubSpot returned an unreadable contact lookup", ErrorKind.SERVER_ERROR, data=found)
        return found

    def upsert_contact(self, form_data: LeadFormData, results: CalculatorResults) -> str:
        email = normalize_email(form_data.email)
        properties = build_contact_properties(form_data, results, completed_at=self.clock())

        existing = self.retry.run(lambda _: self._lookup_contact(email), label="contact lookup")

        if existing and existing.get("id"):
            contact_id = str(existing["id"])
            self.retry.run(
                lambda _: self.client.patch(
                    f"/crm/v3/objects/contacts/{path_segment(contact_id)}",
                    {"properties": properties},
                ),
                label="contact update",
            )
            logger.info("Updated HubSpot contact %s", contact_id)
            return contact_id

        created = self.retry.run(
            lambda _: self.client.post("/crm/v3/objects/contacts", {"properties": properties}),
            label="contact create",
        )
        if not isinstance(created, dict) or not created.get("id"):
            raise CRMError("HubSpot did not return a contact id", ErrorKind.SERVER_ERROR, data=created)
        logger.info("Created HubSpot contact %s", created["id"])
        return str(created["id"])

    # ---- step 2
    def add_to_list(self, contact_id: str, email: str) -> SecondaryOutcome:
        list_id = self.settings.calculator_list_id
        if not list_id:
            logger.info(
                "Calculator list id missing. Set HUBSPOT_CALCULATOR_LIST_ID to maintain "
                "the Calculator Users list."
            )
            return SecondaryOutcome("list_membership", False, "List membership is not configured.", skipped=True)

        try:
            self.retry.run(
                lambda _: self.client.post(
                    f"/crm/v3/lists/{path_segment(list_id)}/memberships/batch/add",
                    {"inputs": [{"id": contact_id}]},
                ),
                label="list membership",
            )
        except Exception as e:
            logger.warning("Failed to add %s to Calculator Users list %s: %r", email, list_id, e)
            return SecondaryOutcome("list_membership", False, "Could not add contact to the Calculator Users list.")
        return SecondaryOutcome("list_membership", True, "Contact added to the Calculator Users list.")

    # ---- step 3
    def submit_form(self, form_data: LeadFormData, results: CalculatorResults) -> bool:
        settings = self.settings
        if not settings.forms_configured:
            logger.info(
                "HubSpot portal or form id missing. Set HUBSPOT_PORTAL_ID and HUBSPOT_FORM_ID "
                "to submit form data."
            )
            return False

        payload = build_form_payload(form_data, results)
        self.retry.run(
            lambda _: self.client.submit_form(settings.portal_id, settings.form_id, payload),
            label="form submission",
        )
        return True

    def _email_only_fallback(self, form_data: LeadFormData) -> bool:
        settings = self.settings
        email = (form_data.email or "").strip()
        if not settings.forms_configured or not _EMAIL_RE.match(email):
            return False

        fields = [
            {"name": name, "value": value}
            for name, value in (("email", email), ("company", form_data.company_name))
            if value
        ]
        try:
            self.client.submit_form(settings.portal_id, settings.form_id, {"fields": fields})
        except Exception as e:
            logger.warning("Email-only fallback submission failed: %r", e)
            return False
        return True

    def submit_to_hubspot(self, form_data: LeadFormData, results: CalculatorResults) -> SubmitResult:
        """
        Create or update the contact, record calculator metrics and submit the form.
        Never raises: every failure is folded into the returned SubmitResult.
        """
        state = SyncState.PENDING
        secondary: List[SecondaryOutcome] = []
        try:
            contact_id = self.upsert_contact(form_data, results)
            state = SyncState.CONTACT_UPSERTED

            secondary.append(self.add_to_list(contact_id, form_data.email))
            state = SyncState.LIST_UPDATED

            self.submit_form(form_data, results)
            state = SyncState.FORM_SUBMITTED
        except Exception as e:
            error_kind = getattr(e, "kind", None)
            logger.error(
                "HubSpot submission failed after %s (kind=%s, status=%s): %s",
                state.value,
                error_kind.value if isinstance(error_kind, ErrorKind) else type(e).__name__,
                getattr(e, "status", None),
                e,
            )
            fallback_succeeded = self._email_only_fallback(form_data)
            return SubmitResult(
                success=False,
                fallback_used=fallback_succeeded,
                message=FALLBACK_MESSAGE if fallback_succeeded else FAILURE_MESSAGE,
                state=SyncState.DEGRADED if fallback_succeeded else SyncState.FAILED,
                error_kind=error_kind if isinstance(error_kind, ErrorKind) else None,
                secondary=secondary,
            )

        return SubmitResult(
            success=True,
            fallback_used=False,
            message=SUCCESS_MESSAGE,
            contact_id=contact_id,
            state=SyncState.SUCCEEDED,
            secondary=secondary,
        )

    # ---- step 4
    def create_deal(self, contact_id: str, results: CalculatorResults) -> DealResult:
        """Open a deal for high-value leads. Failures are reported, never raised."""
        if results.annual_revenue_lost <= DEAL_THRESHOLD:
            return DealResult(
                success=False,
                message="Annual revenue lost below threshold. Deal creation skipped.",
                skipped=True,
            )

        try:
            contact = self.retry.run(
                lambda _: self.client.get(
                    f"/crm/v3/objects/contacts/{path_segment(contact_id)}",
                    query={"properties": DEAL_CONTACT_PROPERTIES},
                ),
                label="deal contact lookup",
            )
            properties: Dict[str, Any] = {}
            if isinstance(contact, dict):
                properties = contact.get("properties") or {}

            body = {
                "properties": {
                    "dealname": deal_name(properties),
                    "amount": f"{deal_amount(results.annual_revenue_lost):.2f}",
                    "pipeline": DEAL_PIPELINE,
                    "dealstage": DEAL_STAGE,
                },
                "associations": [
                    {
                        "to": {"id": contact_id},
                        "types": [
                            {
                                "associationCategory": ASSOCIATION_CATEGORY,
                                "associationTypeId": CONTACT_TO_DEAL_ASSOCIATION_TYPE,
                            }
                        ],
                    }
                ],
            }
            created = self.retry.run(
                lambda _: self.client.post("/crm/v3/objects/deals", body),
                label="deal create",
            )
        except Exception as e:
            logger.warning("Failed to create HubSpot deal for contact %s: %r", contact_id, e)
            return DealResult(success=False, message="Unable to create a HubSpot deal at this time.")

        deal_id = str(created["id"]) if isinstance(created, dict) and created.get("id") else None
        logger.info("Created HubSpot deal %s for contact %s", deal_id, contact_id)
        return DealResult(success=True, message="Deal created successfully.", deal_id=deal_id)

    # ---- step 5
    def trigger_email_sequence(self, email: str) -> EmailSequenceResult:
        workflow_id = self.settings.workflow_id
        if not workflow_id:
            logger.info("HubSpot workflow id missing. Set HUBSPOT_WORKFLOW_ID to enroll contacts.")
            return EmailSequenceResult(
                success=False, message="Workflow enrollment is not configured.", skipped=True
            )

        try:
            key = normalize_email(email)
            self.retry.run(
                lambda _: self.client.post(
                    f"/automation/v3/workflows/{path_segment(workflow_id)}"
                    f"/enrollments/contacts/{path_segment(key)}"
                ),
                label="workflow enrollment",
            )
        except Exception as e:
            logger.warning("Failed to enroll %s in workflow %s: %r", email, workflow_id, e)
            return EmailSequenceResult(
                success=False, message="We could not enroll this contact in the email sequence."
            )
        return EmailSequenceResult(success=True, message="Workflow enrollment successful.")

    # ---- composites
    def sync_lead(self, form_data: LeadFormData, results: CalculatorResults) -> SubmitResult:
        """
        Primary submission, then (only if it succeeded) deal creation and workflow
        enrollment. Their outcomes are appended to result.secondary and never
        change result.success.
        """
        result = self.submit_to_hubspot(form_data, results)
        if not result.success or not result.contact_id:
            return result

        deal = self.create_deal(result.contact_id, results)
        result.secondary.append(
            SecondaryOutcome("deal_creation", deal.success, deal.message, skipped=deal.skipped)
        )
        sequence = self.trigger_email_sequence(form_data.email)
        result.secondary.append(
            SecondaryOutcome("workflow_enrollment", sequence.success, sequence.message, skipped=sequence.skipped)
        )
        return result

    def submit_lead_capture(
        self,
        form_data: LeadFormData,
        results: Optional[CalculatorResults] = None,
    ) -> SubmitResult:
        """Lead capture without a projection; sends zeroed calculator metrics."""
        return self.submit_to_hubspot(form_data, results if results is not None else EMPTY_RESULTS)


def build_pipeline(settings: Optional[HubSpotSettings] = None, retry: Optional[RetryPolicy] = None) -> SyncPipeline:
    settings = settings or load_settings()
    logger.info("HubSpot pipeline configured: %r", settings)
    return SyncPipeline(HubSpotClient(settings), retry=retry)
