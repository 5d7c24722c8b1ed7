"""
Laboratory Service Layer

Test catalog, test requests, samples, live results, billing, notifications
and the analytics overview.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from hms_client.core.config import settings
from hms_client.core.exceptions import BaseClientException, FormValidationError
from hms_client.core.notices import NoticeCenter
from hms_client.domain import filters
from hms_client.domain.billing import LabBillingDraft
from hms_client.domain.forms import FormDraft
from hms_client.domain.resources.realtime import EnvelopeUpdates
from hms_client.domain.resources.repository import Addressing, Endpoint
from hms_client.domain.resources.service import Confirm, ResourceScreen
from hms_client.domain.resources.store import Snapshot
from hms_client.infrastructure.http import ApiClient
from hms_client.infrastructure.sse import RetryPolicy
from hms_client.schemas.billing import LabBillingRecord, PaymentStatus
from hms_client.schemas.lab import (
    LabNotification, Sample, SampleStatus, TestCatalog, TestRequest, TestResult, TestStatus,
)

API = settings.API_PREFIX


def _lab_endpoint(name: str, model, label: str, list_key: str) -> Endpoint:
    # lab routes take the id in the body for updates and in the query for deletes
    return Endpoint(
        f"{API}/lab/{name}",
        model,
        label=label,
        list_key=list_key,
        update_addressing=Addressing.BODY,
        delete_addressing=Addressing.QUERY,
    )


# Catalog

class TestCatalogDraft(FormDraft):
    defaults = {
        "name": "",
        "code": "",
        "category": "",
        "department": "",
        "price": 0.0,
        "description": "",
        "duration": None,
        "preparation": "",
        "sample_required": True,
        "sample_type": "",
        "is_active": True,
    }
    required = ("name", "code", "category", "department")
    float_fields = frozenset({"price"})
    bool_fields = frozenset({"sample_required", "is_active"})


class TestCatalogScreen(ResourceScreen[TestCatalog]):
    endpoint = _lab_endpoint("catalog", TestCatalog, "Test", "tests")
    draft_class = TestCatalogDraft
    default_params = {"page": 1, "limit": settings.DEFAULT_PAGE_SIZE}

    async def search(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
    ):
        """Server-side filtering; the query is re-issued with the new criteria."""
        return await self.load(search=search, category=category, isActive=is_active, page=page)

    def categories(self) -> List[str]:
        return sorted({test.category for test in self.items if test.category})


# Requests

class TestRequestDraft(FormDraft):
    defaults = {
        "patient_id": "",
        "test_catalog_id": "",
        "priority": "ROUTINE",
        "clinical_notes": "",
        "scheduled_at": None,
    }
    required = ("patient_id", "test_catalog_id")


class TestRequestScreen(ResourceScreen[TestRequest]):
    endpoint = _lab_endpoint("requests", TestRequest, "Test request", "tests")
    draft_class = TestRequestDraft
    default_params = {"page": 1, "limit": settings.DEFAULT_PAGE_SIZE}

    def pending(self) -> List[TestRequest]:
        return self.filtered(
            filters.field_in("status", (TestStatus.REQUESTED, TestStatus.SCHEDULED, TestStatus.SAMPLE_COLLECTED))
        )

    def completed(self) -> List[TestRequest]:
        return self.filtered(filters.field_in("status", (TestStatus.COMPLETED, TestStatus.REPORTED, TestStatus.VERIFIED)))


# Samples

DELETABLE_SAMPLE_STATUSES = (SampleStatus.COLLECTED, SampleStatus.REJECTED)


def can_delete_sample(sample: Sample) -> bool:
    return sample.status in DELETABLE_SAMPLE_STATUSES


class SampleDraft(FormDraft):
    defaults = {
        "test_id": "",
        "sample_type": "",
        "collected_by": "",
        "status": SampleStatus.COLLECTED.value,
        "rejection_reason": "",
        "notes": "",
    }
    required = ("test_id", "sample_type")

    def validate(self) -> None:
        super().validate()
        if self.values.get("status") == SampleStatus.REJECTED.value and not self.values.get("rejection_reason"):
            raise FormValidationError(
                message="Rejection reason is required for rejected samples",
                details={"missing": ["rejection_reason"]},
            )


class SampleScreen(ResourceScreen[Sample]):
    endpoint = _lab_endpoint("samples", Sample, "Sample", "samples")
    draft_class = SampleDraft
    default_params = {"page": 1, "limit": settings.DEFAULT_PAGE_SIZE}

    async def delete(self, id: str, confirm: Optional[Confirm] = None) -> bool:
        sample = self.get(id)
        if sample is not None and not can_delete_sample(sample):
            self.notices.error("Only collected or rejected samples can be deleted")
            return False
        return await super().delete(id, confirm)


# Results

class ResultDraft(FormDraft):
    defaults = {
        "test_id": "",
        "parameter": "",
        "value": "",
        "unit": "",
        "reference_range": "",
        "interpretation": "",
        "is_abnormal": False,
        "is_critical": False,
        "notes": "",
    }
    required = ("test_id", "parameter", "value")
    bool_fields = frozenset({"is_abnormal", "is_critical"})


class ResultScreen(ResourceScreen[TestResult]):
    """Results list fed by the results event stream.

    The stream opens with an ``initial`` snapshot and then pushes new and
    updated results. Scoping to one test reconnects with ``testId``.
    Results are saved through the same route; the stream echoes them back.
    """

    endpoint = Endpoint(
        f"{API}/lab/results-sse",
        TestResult,
        label="Test result",
        list_key="results",
        item_key="result",
        update_addressing=Addressing.BODY,
        delete_addressing=Addressing.QUERY,
    )
    draft_class = ResultDraft

    def __init__(
        self,
        api: ApiClient,
        notices: Optional[NoticeCenter] = None,
        policy: Optional[RetryPolicy] = None,
        **kwargs: Any,
    ):
        super().__init__(api, notices)
        self.test_id: Optional[str] = None
        self.live = EnvelopeUpdates(
            self,
            self.endpoint.path,
            list_key="results",
            item_key="result",
            policy=policy,
            **kwargs,
        )

    def handle(self, message: Any) -> None:
        self.live.handle(message)

    async def load(self, test_id: Optional[str] = None, **params: Any) -> Snapshot[TestResult]:
        """(Re)subscribe; the stream's ``initial`` message fills the list."""
        self.test_id = test_id
        self.params = {"testId": test_id} if test_id else {}
        self.store.begin_loading()
        await self.live.rescope(**self.params)
        return self.snapshot

    async def unsubscribe(self) -> None:
        await self.live.stop()

    def abnormal(self) -> List[TestResult]:
        return self.filtered(filters.field_equals("is_abnormal", True))

    def critical(self) -> List[TestResult]:
        return self.filtered(filters.field_equals("is_critical", True))


# Billing

BILLABLE_TEST_STATUSES = (TestStatus.COMPLETED, TestStatus.REPORTED, TestStatus.VERIFIED)


class LabBillingScreen(ResourceScreen[LabBillingRecord]):
    endpoint = _lab_endpoint("billing", LabBillingRecord, "Billing record", "billings")
    draft_class = LabBillingDraft
    default_params = {"page": 1, "limit": settings.DEFAULT_PAGE_SIZE}

    def open_for_test(self, test: Any) -> LabBillingDraft:
        draft = self.dialog.open()
        draft.select_test(test)
        return draft

    async def billable_tests(self) -> List[TestRequest]:
        """Finished tests that have no billing record yet.

        When the billing lookup fails every finished test is offered.
        """
        requests = TestRequestScreen(self.api, self.notices)
        try:
            tests, _ = await requests.repo.list(
                {"status": [s.value for s in BILLABLE_TEST_STATUSES], "limit": 100}
            )
        except BaseClientException as e:
            logger.error(f"Error fetching tests: {e.message}")
            return []
        if not tests:
            return []

        try:
            billed, _ = await self.repo.list({"testIds": [test.id for test in tests]})
        except BaseClientException as e:
            logger.error(f"Error filtering tests: {e.message}")
            return tests
        billed_ids = {record.test_id for record in billed}
        return [test for test in tests if test.id not in billed_ids]

    def search(
        self,
        query: Optional[str] = None,
        payment_status: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> List[LabBillingRecord]:
        return self.filtered(
            filters.text_search(query, "invoice_number", "patient_id", "test_id"),
            filters.field_equals("payment_status", payment_status),
            filters.field_equals("payment_method", payment_method),
        )

    def outstanding_total(self) -> float:
        return sum(
            record.total_amount
            for record in self.items
            if record.payment_status in (PaymentStatus.PENDING, PaymentStatus.PARTIAL)
        )

    def collected_total(self) -> float:
        return sum(record.total_amount for record in self.items if record.payment_status == PaymentStatus.PAID)


# Notifications

class NotificationDraft(FormDraft):
    defaults = {
        "recipient_id": "",
        "test_id": "",
        "channel": "IN_APP",
        "message": "",
    }
    required = ("recipient_id", "channel", "message")


class LabNotificationScreen(ResourceScreen[LabNotification]):
    endpoint = Endpoint(f"{API}/lab/notifications", LabNotification, label="Notification", list_key="notifications")
    draft_class = NotificationDraft

    @property
    def unread_count(self) -> int:
        return sum(1 for notification in self.items if not notification.is_read)

    async def mark_read(self, notification_id: str) -> Optional[LabNotification]:
        return await self.run_action(
            notification_id,
            "read",
            method="PUT",
            success="Notification marked as read",
            failure="Failed to mark notification as read",
        )

    async def mark_all_read(self) -> int:
        marked = 0
        for notification in [n for n in self.items if not n.is_read]:
            if await self.mark_read(notification.id) is not None:
                marked += 1
        return marked


# Analytics

TIME_RANGES = ("week", "month", "quarter", "year")


def percentage(part: float, whole: float) -> float:
    """``part / whole * 100``; zero when there is nothing to divide by."""
    if not whole:
        return 0.0
    return part / whole * 100


class LabAnalytics:
    """Overview counters for one time range.

    The payload groups counters under ``testStatistics``, ``sampleStatistics``
    and ``billingStatistics``; missing groups read as zero.
    """

    def __init__(self, api: ApiClient, notices: Optional[NoticeCenter] = None):
        self.api = api
        self.notices = notices or NoticeCenter()
        self.time_range = "month"
        self.data: Dict[str, Any] = {}
        self.loading = False
        self.error: Optional[str] = None

    async def load(self, time_range: Optional[str] = None) -> Dict[str, Any]:
        if time_range is not None:
            if time_range not in TIME_RANGES:
                raise ValueError(f"Unknown time range: {time_range}")
            self.time_range = time_range
        self.loading = True
        try:
            body = await self.api.get(
                f"{API}/lab/analytics",
                params={"timeRange": self.time_range},
                fallback_message="Failed to fetch analytics data",
            )
        except BaseClientException as e:
            logger.error(f"Error fetching lab analytics: {e.message}")
            self.error = "Failed to fetch analytics data"
            self.notices.error(self.error)
            return self.data
        finally:
            self.loading = False

        self.error = None
        self.data = body or {}
        return self.data

    def stat(self, group: str, name: str) -> float:
        value = (self.data.get(group) or {}).get(name) or 0
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @property
    def completion_rate(self) -> float:
        return percentage(self.stat("testStatistics", "completedTests"), self.stat("testStatistics", "totalTests"))

    @property
    def sample_processing_rate(self) -> float:
        return percentage(
            self.stat("sampleStatistics", "processedSamples"),
            self.stat("sampleStatistics", "totalSamples"),
        )

    @property
    def total_revenue(self) -> float:
        return self.stat("billingStatistics", "totalRevenue")

    @property
    def pending_payments(self) -> float:
        return self.stat("billingStatistics", "pendingPayments")
