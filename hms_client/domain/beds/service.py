"""
Bed Management Service Layer

Inventory, allocation (allocations, transfers, reservations), billing,
room service requests, and the live bed status dashboard.
"""

from typing import Any, Dict, List, Optional
from collections import Counter

from loguru import logger

from hms_client.core.config import settings
from hms_client.core.exceptions import BaseClientException
from hms_client.core.notices import NoticeCenter
from hms_client.domain import filters
from hms_client.domain.billing import BedAdjustmentDraft, BedPricingDraft, PackageDealDraft
from hms_client.domain.forms import FormDialog, FormDraft
from hms_client.domain.resources.realtime import SnapshotUpdates
from hms_client.domain.resources.repository import Endpoint
from hms_client.domain.resources.service import ResourceScreen
from hms_client.infrastructure.http import ApiClient
from hms_client.infrastructure.sse import RetryPolicy
from hms_client.schemas.bed import (
    Bed, BedStatus, BedAllocation, BedTransfer, BedReservation,
    RoomServiceRequest, ServiceRequestStatus,
)
from hms_client.schemas.billing import BedBilling, BedPricing, BillingStatus, PackageDeal

API = settings.API_PREFIX


# Drafts

class BedDraft(FormDraft):
    defaults = {
        "bed_number": "",
        "room_id": "",
        "bed_type": "STANDARD",
        "status": BedStatus.AVAILABLE.value,
        "features": [],
        "notes": "",
    }
    required = ("bed_number", "room_id", "bed_type")


class MaintenanceDraft(FormDraft):
    defaults = {"maintenance_type": "ROUTINE", "scheduled_date": "", "notes": ""}
    required = ("maintenance_type", "scheduled_date")


class AllocationDraft(FormDraft):
    defaults = {"bed_id": "", "patient_id": "", "expected_discharge": None, "notes": ""}
    required = ("bed_id", "patient_id")


class TransferDraft(FormDraft):
    defaults = {"allocation_id": "", "patient_id": "", "to_bed_id": "", "reason": ""}
    required = ("patient_id", "to_bed_id", "reason")


class ReservationDraft(FormDraft):
    defaults = {"bed_id": "", "patient_id": "", "reserved_from": "", "reserved_until": None, "notes": ""}
    required = ("bed_id", "patient_id", "reserved_from")


class ServiceRequestDraft(FormDraft):
    defaults = {
        "room_id": "",
        "patient_id": "",
        "request_type": "HOUSEKEEPING",
        "request_details": "",
        "priority": "NORMAL",
    }
    required = ("room_id", "request_type")


class AssignDraft(FormDraft):
    defaults = {"assigned_to": "", "notes": ""}
    required = ("assigned_to",)


class CompleteDraft(FormDraft):
    defaults = {"completion_notes": "", "feedback_rating": 5}
    int_fields = frozenset({"feedback_rating"})


# Inventory

class BedInventoryScreen(ResourceScreen[Bed]):
    endpoint = Endpoint(f"{API}/beds", Bed, label="Bed")
    draft_class = BedDraft

    def __init__(self, api: ApiClient, notices: Optional[NoticeCenter] = None, **params: Any):
        super().__init__(api, notices)
        self.params.update(params)
        self.maintenance_dialog: FormDialog[MaintenanceDraft] = FormDialog(MaintenanceDraft)

    def search(
        self,
        bed_type: Optional[str] = None,
        status: Optional[str] = None,
        wing: Optional[str] = None,
        floor: Optional[str] = None,
        query: Optional[str] = None,
    ) -> List[Bed]:
        return self.filtered(
            filters.field_equals("bed_type", bed_type),
            filters.field_equals("status", status),
            filters.field_equals("wing", wing),
            filters.field_equals("floor", floor),
            filters.text_search(query, "bed_number", "room_number", "notes"),
        )

    def by_wing(self) -> Dict[str, List[Bed]]:
        grouped: Dict[str, List[Bed]] = {}
        for bed in self.items:
            grouped.setdefault(bed.wing or "Unassigned", []).append(bed)
        return grouped

    def status_counts(self) -> Dict[BedStatus, int]:
        counts = Counter(bed.status for bed in self.items)
        return {status: counts.get(status, 0) for status in BedStatus}

    async def schedule_maintenance(self, bed_id: str) -> bool:
        """Post the maintenance dialog for one bed, then refetch the inventory."""
        draft = self.maintenance_dialog.draft
        try:
            draft.validate()
            await self.api.post(
                f"{self.endpoint.item_path(bed_id)}/maintenance",
                json=draft.payload(),
                fallback_message="Failed to schedule maintenance",
            )
        except BaseClientException as e:
            self._fail(e, "Failed to schedule maintenance")
            return False

        self.maintenance_dialog.close()
        self.maintenance_dialog.reset()
        self.notices.success("Maintenance scheduled successfully")
        await self.load()
        return True


# Allocation

class AllocationScreen(ResourceScreen[BedAllocation]):
    endpoint = Endpoint(f"{API}/beds/allocation", BedAllocation, label="Allocation")
    draft_class = AllocationDraft


class TransferScreen(ResourceScreen[BedTransfer]):
    endpoint = Endpoint(f"{API}/beds/allocation/transfers", BedTransfer, label="Transfer request")
    draft_class = TransferDraft


class ReservationScreen(ResourceScreen[BedReservation]):
    endpoint = Endpoint(f"{API}/beds/allocation/reservations", BedReservation, label="Reservation")
    draft_class = ReservationDraft


class BedAllocationSystem:
    """Allocation tabs sharing one notice center."""

    def __init__(self, api: ApiClient, notices: Optional[NoticeCenter] = None):
        self.notices = notices or NoticeCenter()
        self.allocations = AllocationScreen(api, self.notices)
        self.transfers = TransferScreen(api, self.notices)
        self.reservations = ReservationScreen(api, self.notices)
        self.available_beds = BedInventoryScreen(api, self.notices, status=BedStatus.AVAILABLE)

    async def load(self) -> None:
        await self.allocations.load()
        await self.transfers.load()
        await self.reservations.load()
        await self.available_beds.load()

    async def allocate(self) -> Optional[BedAllocation]:
        allocation = await self.allocations.save()
        if allocation is not None:
            # the allocated bed is no longer available
            await self.available_beds.load()
        return allocation

    async def request_transfer(self) -> Optional[BedTransfer]:
        return await self.transfers.save()

    async def reserve(self) -> Optional[BedReservation]:
        reservation = await self.reservations.save()
        if reservation is not None:
            await self.available_beds.load()
        return reservation

    def current_allocations(self) -> List[BedAllocation]:
        return self.allocations.filtered_by(status="CURRENT")


# Billing

class BedBillingRecordsScreen(ResourceScreen[BedBilling]):
    endpoint = Endpoint(f"{API}/beds/billing", BedBilling, label="Billing")


class BedPricingScreen(ResourceScreen[BedPricing]):
    endpoint = Endpoint(f"{API}/beds/billing/pricing", BedPricing, label="Pricing rate")
    draft_class = BedPricingDraft


class PackageDealScreen(ResourceScreen[PackageDeal]):
    endpoint = Endpoint(f"{API}/beds/billing/packages", PackageDeal, label="Package deal")
    draft_class = PackageDealDraft


def can_invoice(billing: BedBilling) -> bool:
    return billing.billing_status == BillingStatus.PENDING


class BedBillingScreen:
    def __init__(self, api: ApiClient, notices: Optional[NoticeCenter] = None):
        self.notices = notices or NoticeCenter()
        self.billings = BedBillingRecordsScreen(api, self.notices)
        self.pricing = BedPricingScreen(api, self.notices)
        self.packages = PackageDealScreen(api, self.notices)
        self.adjustment_dialog: FormDialog[BedAdjustmentDraft] = FormDialog(BedAdjustmentDraft)

    async def load(self) -> None:
        await self.billings.load()
        await self.pricing.load()
        await self.packages.load()

    def open_adjustment(self, billing: BedBilling) -> BedAdjustmentDraft:
        return self.adjustment_dialog.open(
            additional_charges=billing.additional_charges,
            discounts=billing.discounts,
        )

    async def adjust(self, billing_id: str) -> Optional[BedBilling]:
        updated = await self.billings.run_action(
            billing_id,
            "adjust",
            self.adjustment_dialog.draft,
            method="PUT",
            success="Billing adjusted successfully",
            failure="Failed to adjust billing",
        )
        if updated is not None:
            self.adjustment_dialog.close()
            self.adjustment_dialog.reset()
        return updated

    async def generate_invoice(self, billing_id: str) -> Optional[BedBilling]:
        billing = self.billings.get(billing_id)
        if billing is None or not can_invoice(billing):
            self.notices.error("Invoice can only be generated for pending billing")
            return None
        return await self.billings.run_action(
            billing_id,
            "invoice",
            success="Invoice generated successfully",
            failure="Failed to generate invoice",
        )


# Room service

SERVICE_ACTIONS = {
    ServiceRequestStatus.PENDING: ("assign",),
    ServiceRequestStatus.ASSIGNED: ("complete",),
    ServiceRequestStatus.IN_PROGRESS: ("complete",),
    ServiceRequestStatus.COMPLETED: (),
    ServiceRequestStatus.CANCELLED: (),
}

OPEN_SERVICE_STATUSES = (
    ServiceRequestStatus.PENDING,
    ServiceRequestStatus.ASSIGNED,
    ServiceRequestStatus.IN_PROGRESS,
)


class RoomServiceScreen(ResourceScreen[RoomServiceRequest]):
    endpoint = Endpoint(f"{API}/beds/services", RoomServiceRequest, label="Service request")
    draft_class = ServiceRequestDraft

    def __init__(self, api: ApiClient, notices: Optional[NoticeCenter] = None):
        super().__init__(api, notices)
        self.assign_dialog: FormDialog[AssignDraft] = FormDialog(AssignDraft)
        self.complete_dialog: FormDialog[CompleteDraft] = FormDialog(CompleteDraft)

    @staticmethod
    def available_actions(request: RoomServiceRequest):
        return SERVICE_ACTIONS.get(request.status, ())

    def open_requests(self) -> List[RoomServiceRequest]:
        return self.filtered(filters.field_in("status", OPEN_SERVICE_STATUSES))

    def closed_requests(self) -> List[RoomServiceRequest]:
        return self.filtered(
            filters.field_in("status", (ServiceRequestStatus.COMPLETED, ServiceRequestStatus.CANCELLED))
        )

    async def _transition(self, request_id: str, name: str, dialog: FormDialog, verb: str):
        request = self.get(request_id)
        if request is None or name not in self.available_actions(request):
            self.notices.error(f"Request cannot be {verb} in its current state")
            return None
        updated = await self.run_action(
            request_id,
            name,
            dialog.draft,
            method="PUT",
            success=f"Request {verb} successfully",
            failure=f"Failed to {name} request",
        )
        if updated is not None:
            dialog.close()
            dialog.reset()
        return updated

    async def assign(self, request_id: str) -> Optional[RoomServiceRequest]:
        return await self._transition(request_id, "assign", self.assign_dialog, "assigned")

    async def complete(self, request_id: str) -> Optional[RoomServiceRequest]:
        return await self._transition(request_id, "complete", self.complete_dialog, "completed")


# Dashboard

class BedDashboard:
    """Bed list kept in sync by the bed status event stream."""

    def __init__(
        self,
        api: ApiClient,
        notices: Optional[NoticeCenter] = None,
        policy: Optional[RetryPolicy] = None,
        **kwargs: Any,
    ):
        self.beds = BedInventoryScreen(api, notices)
        self.notices = self.beds.notices
        self.live = SnapshotUpdates(self.beds, f"{API}/beds/status-sse", policy=policy, **kwargs)

    @property
    def items(self):
        return self.beds.items

    async def open(self) -> None:
        """Initial fetch, then subscribe."""
        snapshot = await self.beds.load()
        if snapshot.error:
            logger.error(f"Error fetching dashboard data: {snapshot.error}")
        self.live.start()

    async def close(self) -> None:
        await self.live.stop()

    def occupancy(self) -> Dict[str, Any]:
        counts = self.beds.status_counts()
        total = sum(counts.values())
        occupied = counts[BedStatus.OCCUPIED]
        return {
            "total": total,
            "available": counts[BedStatus.AVAILABLE],
            "occupied": occupied,
            "reserved": counts[BedStatus.RESERVED],
            "unavailable": counts[BedStatus.UNDER_MAINTENANCE]
            + counts[BedStatus.CLEANING]
            + counts[BedStatus.OUT_OF_SERVICE],
            "occupancy_rate": (occupied / total * 100) if total else 0.0,
        }
