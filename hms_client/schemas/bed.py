from typing import Optional, List
from datetime import datetime
import enum

from hms_client.schemas.base import ApiModel


class BedType(str, enum.Enum):
    STANDARD = "STANDARD"
    ELECTRIC = "ELECTRIC"
    ICU = "ICU"
    PEDIATRIC = "PEDIATRIC"
    BARIATRIC = "BARIATRIC"
    MATERNITY = "MATERNITY"
    ISOLATION = "ISOLATION"


class BedStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    RESERVED = "RESERVED"
    UNDER_MAINTENANCE = "UNDER_MAINTENANCE"
    CLEANING = "CLEANING"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"


class AllocationStatus(str, enum.Enum):
    CURRENT = "CURRENT"
    DISCHARGED = "DISCHARGED"
    TRANSFERRED = "TRANSFERRED"


class TransferStatus(str, enum.Enum):
    REQUESTED = "REQUESTED"
    CONFIRMED = "CONFIRMED"
    TRANSFERRED = "TRANSFERRED"
    CANCELLED = "CANCELLED"


class ReservationStatus(str, enum.Enum):
    REQUESTED = "REQUESTED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class ServiceRequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Bed(ApiModel):
    id: str
    bed_number: str
    room_id: str
    bed_type: BedType = BedType.STANDARD
    status: BedStatus = BedStatus.AVAILABLE
    floor: Optional[str] = None
    wing: Optional[str] = None
    room_number: Optional[str] = None
    features: List[str] = []
    patient_id: Optional[str] = None
    allocated_at: Optional[datetime] = None
    expected_discharge: Optional[datetime] = None
    notes: Optional[str] = None


class BedAllocation(ApiModel):
    id: str
    bed_id: str
    patient_id: str
    allocated_at: Optional[datetime] = None
    expected_discharge: Optional[datetime] = None
    discharged_at: Optional[datetime] = None
    status: AllocationStatus = AllocationStatus.CURRENT
    notes: Optional[str] = None


class BedTransfer(ApiModel):
    id: str
    patient_id: str
    from_bed_id: Optional[str] = None
    to_bed_id: str
    allocation_id: Optional[str] = None
    reason: Optional[str] = None
    requested_at: Optional[datetime] = None
    status: TransferStatus = TransferStatus.REQUESTED


class BedReservation(ApiModel):
    id: str
    bed_id: str
    patient_id: str
    reserved_from: Optional[datetime] = None
    reserved_until: Optional[datetime] = None
    status: ReservationStatus = ReservationStatus.REQUESTED
    notes: Optional[str] = None


class RoomServiceRequest(ApiModel):
    id: str
    room_id: str
    patient_id: Optional[str] = None
    request_type: str = "HOUSEKEEPING"
    request_details: Optional[str] = None
    priority: str = "NORMAL"
    assigned_to: Optional[str] = None
    requested_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completion_notes: Optional[str] = None
    feedback_rating: Optional[int] = None
    status: ServiceRequestStatus = ServiceRequestStatus.PENDING
