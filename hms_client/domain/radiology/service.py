"""
Radiology Service Layer

Imaging requests: create and edit through the collection route, advance the
workflow with status PATCHes, cancel with DELETE.
"""

from typing import Dict, List, Optional, Tuple

from loguru import logger

from hms_client.core.config import settings
from hms_client.core.exceptions import BaseClientException
from hms_client.core.notices import NoticeCenter
from hms_client.domain import filters
from hms_client.domain.forms import FormDraft
from hms_client.domain.resources.repository import Addressing, Endpoint
from hms_client.domain.resources.service import Confirm, ResourceScreen
from hms_client.infrastructure.http import ApiClient
from hms_client.schemas.radiology import RadiologyRequest, RadiologyStatus

API = settings.API_PREFIX

# Which status buttons a request in a given status offers.
TRANSITIONS: Dict[RadiologyStatus, Tuple[RadiologyStatus, ...]] = {
    RadiologyStatus.REQUESTED: (
        RadiologyStatus.SCHEDULED,
        RadiologyStatus.CHECKED_IN,
        RadiologyStatus.CANCELLED,
    ),
    RadiologyStatus.SCHEDULED: (
        RadiologyStatus.CHECKED_IN,
        RadiologyStatus.IN_PROGRESS,
        RadiologyStatus.CANCELLED,
    ),
    RadiologyStatus.CHECKED_IN: (RadiologyStatus.IN_PROGRESS,),
    RadiologyStatus.IN_PROGRESS: (RadiologyStatus.COMPLETED,),
    RadiologyStatus.COMPLETED: (RadiologyStatus.REPORTED,),
    RadiologyStatus.REPORTED: (),
    RadiologyStatus.CANCELLED: (),
}

NOT_EDITABLE = (RadiologyStatus.COMPLETED, RadiologyStatus.CANCELLED)
NOT_CANCELLABLE = (RadiologyStatus.COMPLETED, RadiologyStatus.IN_PROGRESS)


def available_transitions(status: RadiologyStatus) -> Tuple[RadiologyStatus, ...]:
    return TRANSITIONS.get(RadiologyStatus(status), ())


class RadiologyRequestDraft(FormDraft):
    defaults = {
        "patient_id": "",
        "doctor_id": "",
        "service_catalog_id": "",
        "scheduled_at": None,
        "priority": "ROUTINE",
        "status": RadiologyStatus.REQUESTED.value,
        "clinical_info": "",
        "reason_for_exam": "",
        "patient_pregnant": False,
        "patient_allergies": "",
        "previous_exams": "",
        "notes": "",
    }
    required = ("patient_id", "doctor_id", "service_catalog_id", "reason_for_exam")
    bool_fields = frozenset({"patient_pregnant"})


class RadiologyRequestScreen(ResourceScreen[RadiologyRequest]):
    endpoint = Endpoint(
        f"{API}/radiology/requests",
        RadiologyRequest,
        label="Imaging request",
        list_key="requests",
        update_addressing=Addressing.BODY,
        delete_addressing=Addressing.QUERY,
    )
    draft_class = RadiologyRequestDraft
    default_params = {"page": 1, "limit": settings.DEFAULT_PAGE_SIZE}

    def __init__(self, api: ApiClient, notices: Optional[NoticeCenter] = None):
        super().__init__(api, notices)
        self.search_query = ""
        self.status_filter: Optional[RadiologyStatus] = None

    def visible(self) -> List[RadiologyRequest]:
        """Rows after the search box and the status dropdown."""
        return self.filtered(
            filters.text_search(self.search_query, "patient_name", "patient_id", "service_name", "referring_physician"),
            filters.field_equals("status", self.status_filter),
        )

    @staticmethod
    def can_edit(request: RadiologyRequest) -> bool:
        return request.status not in NOT_EDITABLE

    @staticmethod
    def can_cancel(request: RadiologyRequest) -> bool:
        return request.status not in NOT_CANCELLABLE

    async def update_status(self, request_id: str, status: RadiologyStatus) -> Optional[RadiologyRequest]:
        request = self.get(request_id)
        status = RadiologyStatus(status)
        if request is not None and status not in available_transitions(request.status):
            self.notices.error(f"Cannot move request from {request.status.value} to {status.value}")
            return None
        try:
            body = await self.api.patch(
                self.endpoint.path,
                json={"id": request_id, "status": status.value},
                fallback_message="Failed to update status",
            )
            updated = self.repo.parse_item(body)
        except BaseClientException as e:
            self._fail(e, "Failed to update status")
            return None

        self.store.replace(updated)
        self.notices.success("Status updated successfully")
        logger.info(f"Imaging request {request_id} moved to {status.value}")
        return updated

    async def cancel(self, request_id: str, confirm: Optional[Confirm] = None) -> bool:
        """DELETE marks the request cancelled server-side; the list is refetched."""
        request = self.get(request_id)
        if request is not None and not self.can_cancel(request):
            self.notices.error("Completed or in-progress requests cannot be cancelled")
            return False
        if not await self.delete(request_id, confirm):
            return False
        await self.load()
        return True
