"""
Co-consultation Service Layer

Co-consultations between a primary and a secondary doctor, the fee split
between them, and the notes they share.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from hms_client.core.config import settings
from hms_client.core.exceptions import (
    BaseClientException, ErrorHandler, FormValidationError, InvalidResponseError,
)
from hms_client.core.notices import NoticeCenter
from hms_client.domain.forms import FormDialog, FormDraft, parse_float
from hms_client.domain.resources.repository import Addressing, Endpoint, unwrap
from hms_client.domain.resources.service import ResourceScreen, failure_message
from hms_client.infrastructure.http import ApiClient
from hms_client.schemas.consultation import (
    BillingDistribution, CoConsultation, CoConsultationStatus, SharedNote,
)

API = settings.API_PREFIX

DEFAULT_PRIMARY_PERCENTAGE = 50.0


def split_amount(total: float, primary_percentage: float) -> Dict[str, float]:
    """Primary and secondary shares of ``total``; the two percentages always sum to 100."""
    secondary_percentage = 100 - primary_percentage
    return {
        "primary_doctor_percentage": primary_percentage,
        "secondary_doctor_percentage": secondary_percentage,
        "primary_doctor_amount": total * primary_percentage / 100,
        "secondary_doctor_amount": total * secondary_percentage / 100,
    }


class CoConsultationDraft(FormDraft):
    defaults = {
        "primary_doctor_id": "",
        "secondary_doctor_id": "",
        "patient_id": "",
        "reason": "",
        "notes": "",
        "scheduled_time": None,
        "duration": 30,
    }
    required = ("secondary_doctor_id", "patient_id", "reason", "scheduled_time")
    int_fields = frozenset({"duration"})

    def validate(self) -> None:
        super().validate()
        primary = self.values.get("primary_doctor_id")
        if primary and primary == self.values.get("secondary_doctor_id"):
            raise FormValidationError(
                message="Secondary doctor must differ from the primary doctor",
                details={"invalid": ["secondary_doctor_id"]},
            )


class CoConsultationEditDraft(FormDraft):
    """Only status, notes, schedule and duration are editable."""

    defaults = {"status": "", "notes": "", "scheduled_time": None, "duration": 30}
    required = ("status", "scheduled_time")
    int_fields = frozenset({"duration"})

    def __init__(self, entity: Optional[Any] = None, **overrides: Any):
        super().__init__(entity, **overrides)
        editable = set(self.defaults)
        self.values = {k: v for k, v in self.values.items() if k in editable}


class CoConsultationScreen(ResourceScreen[CoConsultation]):
    endpoint = Endpoint(
        f"{API}/doctors/co-consultations",
        CoConsultation,
        label="Co-consultation",
        list_key="coConsultations",
        item_key="coConsultation",
        update_addressing=Addressing.BODY,
    )
    draft_class = CoConsultationDraft

    def __init__(self, api: ApiClient, doctor_id: Optional[str] = None, notices: Optional[NoticeCenter] = None):
        super().__init__(api, notices)
        self.doctor_id = doctor_id or None
        self.params = {"page": 1, "limit": settings.DEFAULT_PAGE_SIZE}
        self.edit_dialog: FormDialog[CoConsultationEditDraft] = FormDialog(CoConsultationEditDraft)

    async def load(self, **params: Any):
        if not self.doctor_id:
            self.notices.error("No doctor ID provided")
            return self.store.failed("No doctor ID provided")
        return await super().load(doctorId=self.doctor_id, **params)

    async def filter_status(self, status: Optional[CoConsultationStatus]):
        return await self.load(status=status, page=1)

    async def page(self, page: int):
        return await self.load(page=page)

    def open_create(self, **overrides: Any) -> CoConsultationDraft:
        return self.dialog.open(primary_doctor_id=self.doctor_id, **overrides)

    def open_edit(self, consultation: CoConsultation) -> CoConsultationEditDraft:
        return self.edit_dialog.open(consultation)

    def as_primary(self) -> List[CoConsultation]:
        return self.filtered_by(primary_doctor_id=self.doctor_id)

    def as_secondary(self) -> List[CoConsultation]:
        return self.filtered_by(secondary_doctor_id=self.doctor_id)


# Billing distribution

class BillingDistributionDraft(FormDraft):
    defaults = {
        "co_consultation_id": "",
        "total_amount": 0.0,
        "primary_doctor_percentage": DEFAULT_PRIMARY_PERCENTAGE,
        "secondary_doctor_percentage": DEFAULT_PRIMARY_PERCENTAGE,
        "primary_doctor_amount": 0.0,
        "secondary_doctor_amount": 0.0,
        "is_custom": True,
    }
    required = ("co_consultation_id",)
    float_fields = frozenset({"total_amount", "primary_doctor_percentage"})

    def recompute(self) -> None:
        primary = parse_float(self.values.get("primary_doctor_percentage"))
        self.values.update(split_amount(parse_float(self.values.get("total_amount")), primary))

    def validate(self) -> None:
        super().validate()
        primary = self.values["primary_doctor_percentage"]
        if not 0 <= primary <= 100:
            raise FormValidationError(
                message="Primary doctor percentage must be between 0 and 100",
                details={"invalid": ["primary_doctor_percentage"]},
            )

    def reset_to_default(self) -> "BillingDistributionDraft":
        return self.set("primary_doctor_percentage", DEFAULT_PRIMARY_PERCENTAGE)

    def payload(self) -> Dict[str, Any]:
        return {
            "coConsultationId": self.values["co_consultation_id"],
            "primaryDoctorPercentage": self.values["primary_doctor_percentage"],
            "secondaryDoctorPercentage": self.values["secondary_doctor_percentage"],
            "isCustom": True,
        }


class BillingDistributionPanel:
    """Fee split for one co-consultation."""

    path = f"{API}/doctors/billing/distribution"

    def __init__(self, api: ApiClient, co_consultation_id: str, notices: Optional[NoticeCenter] = None):
        self.api = api
        self.co_consultation_id = co_consultation_id
        self.notices = notices or NoticeCenter()
        self.distribution: Optional[BillingDistribution] = None
        self.primary_doctor: Optional[Dict[str, Any]] = None
        self.secondary_doctor: Optional[Dict[str, Any]] = None
        self.draft = BillingDistributionDraft(co_consultation_id=co_consultation_id)
        self.loading = False
        self.error: Optional[str] = None

    def is_primary(self, doctor_id: Optional[str]) -> bool:
        return bool(self.primary_doctor) and self.primary_doctor.get("id") == doctor_id

    @property
    def dirty(self) -> bool:
        if self.distribution is None:
            return True
        return self.draft["primary_doctor_percentage"] != self.distribution.primary_doctor_percentage

    async def load(self) -> Optional[BillingDistribution]:
        self.loading = True
        try:
            body = await self.api.get(
                self.path,
                params={"coConsultationId": self.co_consultation_id},
                fallback_message="Failed to fetch billing distribution",
            )
            data = unwrap(body)
            if not isinstance(data, dict) or not isinstance(data.get("billingDistribution"), dict):
                raise InvalidResponseError(details={"path": self.path, "expected_key": "billingDistribution"})
            with ErrorHandler("load billing distribution"):
                distribution = BillingDistribution.model_validate(data["billingDistribution"])
        except BaseClientException as e:
            logger.error(f"Error loading billing distribution {self.co_consultation_id}: {e.message}")
            self.error = "Error loading billing distribution. Please try again."
            self.notices.error(self.error)
            return None
        finally:
            self.loading = False

        self.error = None
        self.distribution = distribution
        self.primary_doctor = data.get("primaryDoctor")
        self.secondary_doctor = data.get("secondaryDoctor")
        self.draft = BillingDistributionDraft(
            co_consultation_id=self.co_consultation_id,
            total_amount=distribution.total_amount,
            primary_doctor_percentage=distribution.primary_doctor_percentage,
        )
        return distribution

    def set_primary_percentage(self, value: Any) -> Dict[str, float]:
        self.draft.set("primary_doctor_percentage", value)
        return split_amount(self.draft["total_amount"], self.draft["primary_doctor_percentage"])

    async def save(self) -> Optional[BillingDistribution]:
        """Persist the split, then refetch the server's view of it."""
        try:
            self.draft.validate()
            await self.api.post(
                self.path,
                json=self.draft.payload(),
                fallback_message="Failed to save billing distribution",
            )
        except BaseClientException as e:
            self.error = failure_message(e, "Error saving billing distribution. Please try again.")
            logger.error(f"Error saving billing distribution {self.co_consultation_id}: {e.message}")
            self.notices.error(self.error)
            return None

        self.notices.success("Billing distribution saved successfully")
        return await self.load()


# Shared notes

class SharedNoteScreen(ResourceScreen[SharedNote]):
    endpoint = Endpoint(
        f"{API}/doctors/shared-notes",
        SharedNote,
        label="Note",
        list_key="sharedNotes",
        item_key="sharedNote",
        update_addressing=Addressing.BODY,
        delete_addressing=Addressing.QUERY,
        id_param="noteId",
    )

    def __init__(self, api: ApiClient, co_consultation_id: str, notices: Optional[NoticeCenter] = None):
        super().__init__(api, notices)
        self.co_consultation_id = co_consultation_id
        self.params = {"coConsultationId": co_consultation_id}

    async def add(self, content: str) -> Optional[SharedNote]:
        if not content or not content.strip():
            return None
        return await self.create({"coConsultationId": self.co_consultation_id, "content": content})

    async def edit(self, note_id: str, content: str) -> Optional[SharedNote]:
        if not content or not content.strip():
            return None
        return await self.update(note_id, {"content": content})

    def by_doctor(self, doctor_id: str) -> List[SharedNote]:
        return self.filtered_by(doctor_id=doctor_id)
