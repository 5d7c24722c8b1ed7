from typing import Optional
from datetime import datetime
import enum

from hms_client.schemas.base import ApiModel


class RadiologyStatus(str, enum.Enum):
    REQUESTED = "REQUESTED"
    SCHEDULED = "SCHEDULED"
    CHECKED_IN = "CHECKED_IN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REPORTED = "REPORTED"
    CANCELLED = "CANCELLED"


class RadiologyPriority(str, enum.Enum):
    STAT = "STAT"
    URGENT = "URGENT"
    ROUTINE = "ROUTINE"
    ELECTIVE = "ELECTIVE"


class RadiologyRequest(ApiModel):
    id: str
    patient_id: str
    patient_name: Optional[str] = None
    doctor_id: Optional[str] = None
    referring_physician: Optional[str] = None
    service_catalog_id: Optional[str] = None
    service_name: Optional[str] = None
    priority: RadiologyPriority = RadiologyPriority.ROUTINE
    status: RadiologyStatus = RadiologyStatus.REQUESTED
    reason_for_exam: Optional[str] = None
    clinical_info: Optional[str] = None
    patient_pregnant: bool = False
    patient_allergies: Optional[str] = None
    previous_exams: Optional[str] = None
    notes: Optional[str] = None
    requested_at: Optional[datetime] = None
    scheduled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
