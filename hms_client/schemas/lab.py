from typing import Optional, List
from datetime import datetime
import enum

from hms_client.schemas.base import ApiModel


class TestStatus(str, enum.Enum):
    REQUESTED = "REQUESTED"
    SCHEDULED = "SCHEDULED"
    SAMPLE_COLLECTED = "SAMPLE_COLLECTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REPORTED = "REPORTED"
    VERIFIED = "VERIFIED"
    CANCELLED = "CANCELLED"


class SampleStatus(str, enum.Enum):
    COLLECTED = "COLLECTED"
    RECEIVED = "RECEIVED"
    PROCESSING = "PROCESSING"
    ANALYZED = "ANALYZED"
    REJECTED = "REJECTED"


class NotificationChannel(str, enum.Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    WHATSAPP = "WHATSAPP"
    IN_APP = "IN_APP"


class ReferenceRange(ApiModel):
    id: Optional[str] = None
    parameter: str
    gender: Optional[str] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    lower_limit: Optional[str] = None
    upper_limit: Optional[str] = None
    textual_range: Optional[str] = None
    unit: Optional[str] = None


class TestCatalog(ApiModel):
    id: str
    name: str
    code: str
    category: str
    department: str
    price: float = 0.0
    description: Optional[str] = None
    duration: Optional[int] = None
    preparation: Optional[str] = None
    sample_required: bool = True
    sample_type: Optional[str] = None
    report_template: Optional[str] = None
    is_active: bool = True
    reference_ranges: List[ReferenceRange] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TestRequest(ApiModel):
    id: str
    patient_id: str
    test_catalog_id: str
    requested_by: Optional[str] = None
    priority: str = "ROUTINE"
    clinical_notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    status: TestStatus = TestStatus.REQUESTED
    created_at: Optional[datetime] = None


class Sample(ApiModel):
    id: str
    test_id: str
    sample_type: str
    collected_by: Optional[str] = None
    collected_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    status: SampleStatus = SampleStatus.COLLECTED
    notes: Optional[str] = None


class TestResult(ApiModel):
    id: str
    test_id: str
    parameter: str
    value: str
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    interpretation: Optional[str] = None
    is_abnormal: bool = False
    is_critical: bool = False
    performed_by: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class LabNotification(ApiModel):
    id: str
    recipient_id: Optional[str] = None
    test_id: Optional[str] = None
    channel: NotificationChannel = NotificationChannel.IN_APP
    message: str = ""
    is_read: bool = False
    created_at: Optional[datetime] = None
