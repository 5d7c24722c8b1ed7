from typing import Optional
from datetime import datetime
import enum

from hms_client.schemas.base import ApiModel


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    INSURANCE = "INSURANCE"
    UPI = "UPI"


class BillingStatus(str, enum.Enum):
    PENDING = "PENDING"
    INVOICED = "INVOICED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class BedBilling(ApiModel):
    id: str
    allocation_id: str
    patient_name: Optional[str] = None
    bed_number: Optional[str] = None
    room_number: Optional[str] = None
    room_type: Optional[str] = None
    base_rate: float = 0.0
    total_days: int = 0
    additional_charges: float = 0.0
    discounts: float = 0.0
    total_amount: float = 0.0
    billing_status: BillingStatus = BillingStatus.PENDING
    allocated_at: Optional[datetime] = None
    discharged_at: Optional[datetime] = None


class BedPricing(ApiModel):
    id: str
    bed_type: str
    room_type: str
    base_rate: float = 0.0
    hourly_rate: Optional[float] = None
    minimum_stay: int = 1
    discount_after_days: Optional[int] = None
    discount_percentage: Optional[float] = None
    tax_percentage: float = 0.0
    is_active: bool = True


class PackageDeal(ApiModel):
    id: str
    name: str
    room_type: str
    bed_type: str
    days: int = 1
    base_price: float = 0.0
    description: Optional[str] = None
    is_active: bool = True


class LabBillingRecord(ApiModel):
    id: str
    test_id: str
    patient_id: str
    invoice_number: Optional[str] = None
    amount: float = 0.0
    discount: float = 0.0
    tax: float = 0.0
    total_amount: float = 0.0
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_status: PaymentStatus = PaymentStatus.PENDING
    insurance_covered: bool = False
    insurance_amount: float = 0.0
    insurance_provider: Optional[str] = None
    insurance_policy_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
