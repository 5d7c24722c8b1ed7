"""Billing arithmetic and the billing form drafts."""

from typing import Any, Optional

from hms_client.core.exceptions import FormValidationError
from hms_client.domain.forms import FormDraft, parse_float
from hms_client.schemas.billing import BedBilling, PaymentMethod, PaymentStatus


def compute_total(amount: float, discount: float, tax: float) -> float:
    """``amount - discount + tax``; inputs are not clamped."""
    return amount - discount + tax


def adjusted_bed_total(billing: BedBilling, additional_charges: float, discounts: float) -> float:
    return billing.base_rate * billing.total_days + additional_charges - discounts


class LabBillingDraft(FormDraft):
    defaults = {
        "test_id": "",
        "patient_id": "",
        "amount": 0.0,
        "discount": 0.0,
        "tax": 0.0,
        "total_amount": 0.0,
        "payment_method": PaymentMethod.CASH.value,
        "payment_status": PaymentStatus.PENDING.value,
        "insurance_covered": False,
        "insurance_amount": 0.0,
        "insurance_provider": "",
        "insurance_policy_number": "",
        "notes": "",
    }
    required = ("test_id", "patient_id", "payment_method")
    float_fields = frozenset({"amount", "discount", "tax", "insurance_amount"})
    bool_fields = frozenset({"insurance_covered"})

    def recompute(self) -> None:
        self.values["total_amount"] = compute_total(
            parse_float(self.values.get("amount")),
            parse_float(self.values.get("discount")),
            parse_float(self.values.get("tax")),
        )

    def select_test(self, test: Any) -> "LabBillingDraft":
        """Prefill from a completed test: its id, patient and catalog price."""
        catalog = _get(test, "test_catalog") or _get(test, "testCatalog") or {}
        self.values["test_id"] = _get(test, "id")
        self.values["patient_id"] = _get(test, "patient_id") or _get(test, "patientId")
        self.values["amount"] = parse_float(_get(catalog, "price"))
        self.recompute()
        return self

    def validate(self) -> None:
        super().validate()
        if self.values.get("insurance_covered") and not self.values.get("insurance_provider"):
            raise FormValidationError(
                message="Insurance provider is required for insured billing",
                details={"missing": ["insurance_provider"]},
            )


class BedAdjustmentDraft(FormDraft):
    defaults = {"additional_charges": 0.0, "discounts": 0.0, "reason": ""}
    required = ("reason",)
    float_fields = frozenset({"additional_charges", "discounts"})

    def preview_total(self, billing: BedBilling) -> float:
        return adjusted_bed_total(billing, self.values["additional_charges"], self.values["discounts"])


class BedPricingDraft(FormDraft):
    defaults = {
        "bed_type": "STANDARD",
        "room_type": "GENERAL_WARD",
        "base_rate": 0.0,
        "hourly_rate": None,
        "minimum_stay": 1,
        "discount_after_days": None,
        "discount_percentage": None,
        "tax_percentage": 0.0,
        "is_active": True,
    }
    required = ("bed_type", "room_type")
    float_fields = frozenset({"base_rate", "hourly_rate", "discount_percentage", "tax_percentage"})
    int_fields = frozenset({"minimum_stay"})
    bool_fields = frozenset({"is_active"})


class PackageDealDraft(FormDraft):
    defaults = {
        "name": "",
        "room_type": "GENERAL_WARD",
        "bed_type": "STANDARD",
        "days": 1,
        "base_price": 0.0,
        "description": "",
        "is_active": True,
    }
    required = ("name", "room_type", "bed_type")
    float_fields = frozenset({"base_price"})
    int_fields = frozenset({"days"})
    bool_fields = frozenset({"is_active"})


def _get(obj: Any, name: str) -> Optional[Any]:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)
