from typing import Optional, List
from datetime import datetime
import enum

from hms_client.schemas.base import ApiModel


class CoConsultationStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class BillingDistribution(ApiModel):
    id: Optional[str] = None
    co_consultation_id: Optional[str] = None
    primary_doctor_percentage: float = 50.0
    secondary_doctor_percentage: float = 50.0
    primary_doctor_amount: float = 0.0
    secondary_doctor_amount: float = 0.0
    total_amount: float = 0.0
    is_custom: bool = False


class SharedNote(ApiModel):
    id: str
    doctor_id: Optional[str] = None
    content: str
    co_consultation_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CoConsultation(ApiModel):
    id: str
    primary_doctor_id: str
    secondary_doctor_id: str
    patient_id: str
    reason: str = ""
    notes: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    duration: int = 30
    status: CoConsultationStatus = CoConsultationStatus.PENDING
    appointment_id: Optional[str] = None
    billing_distribution: Optional[BillingDistribution] = None
    shared_notes: List[SharedNote] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
