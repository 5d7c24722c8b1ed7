from typing import Optional

from pydantic import Field

from hms_client.schemas.base import ApiModel


class OccupancyRow(ApiModel):
    period: Optional[str] = None
    bed_type: Optional[str] = None
    ward: Optional[str] = None
    total_beds: int = 0
    occupied_beds: int = 0
    occupancy_rate: float = 0.0


class LengthOfStayRow(ApiModel):
    department: Optional[str] = None
    diagnosis: Optional[str] = None
    average_los: float = Field(0.0, alias="averageLOS")
    min_los: float = Field(0.0, alias="minLOS")
    max_los: float = Field(0.0, alias="maxLOS")
    patient_count: int = 0


class RevenueRow(ApiModel):
    room_type: Optional[str] = None
    bed_type: Optional[str] = None
    total_revenue: float = 0.0
    occupancy_days: int = 0
    average_rate_per_day: float = 0.0


class TurnoverRow(ApiModel):
    ward: Optional[str] = None
    average_turnover_time: float = 0.0
    admissions: int = 0
    discharges: int = 0
    cleaning_time: float = 0.0
    preparation_time: float = 0.0


class WardEfficiencyRow(ApiModel):
    ward: Optional[str] = None
    staff_to_patient_ratio: float = 0.0
    bed_utilization: float = 0.0
    average_los: float = Field(0.0, alias="averageLOS")
    readmission_rate: float = 0.0
