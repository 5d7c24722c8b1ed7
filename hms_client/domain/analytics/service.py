"""
Analytics Service Layer

Summary statistics over report rows, and the bed analytics dashboard that
fetches occupancy, length-of-stay, revenue, turnover and ward efficiency
reports for a date range.
"""

from typing import Any, Dict, Iterable, List, Optional, Type
from datetime import date, timedelta

from loguru import logger
from pydantic import ValidationError

from hms_client.core.config import settings
from hms_client.core.exceptions import BaseClientException, InvalidResponseError
from hms_client.domain import filters
from hms_client.infrastructure.http import ApiClient
from hms_client.schemas.analytics import (
    LengthOfStayRow, OccupancyRow, RevenueRow, TurnoverRow, WardEfficiencyRow,
)
from hms_client.schemas.base import ApiModel

API = settings.API_PREFIX

DEFAULT_WINDOW_DAYS = 30


def summarize(values: Iterable[float]) -> Dict[str, float]:
    """Average, minimum and maximum; all zero for an empty input."""
    values = list(values)
    if not values:
        return {"average": 0, "min": 0, "max": 0}
    return {
        "average": sum(values) / len(values),
        "min": min(values),
        "max": max(values),
    }


def summarize_totals(values: Iterable[float]) -> Dict[str, float]:
    values = list(values)
    if not values:
        return {"total": 0, "average": 0}
    total = sum(values)
    return {"total": total, "average": total / len(values)}


class ReportFilters:
    """Dropdown filters shared by every report; an empty value means "all"."""

    __slots__ = ("bed_type", "room_type", "ward", "department")

    def __init__(self, bed_type: str = "", room_type: str = "", ward: str = "", department: str = ""):
        self.bed_type = bed_type
        self.room_type = room_type
        self.ward = ward
        self.department = department

    def predicates(self, *names: str) -> List[filters.Predicate]:
        return [filters.field_equals(name, getattr(self, name)) for name in names]


# report name -> (row model, filters that apply to it)
REPORTS: Dict[str, Any] = {
    "occupancy": (OccupancyRow, ("bed_type", "ward")),
    "los": (LengthOfStayRow, ("department",)),
    "revenue": (RevenueRow, ("bed_type", "room_type")),
    "turnover": (TurnoverRow, ("ward",)),
    "efficiency": (WardEfficiencyRow, ("ward",)),
}


class BedAnalytics:
    def __init__(self, api: ApiClient, today: Optional[date] = None):
        self.api = api
        end = today or date.today()
        self.start_date = end - timedelta(days=DEFAULT_WINDOW_DAYS)
        self.end_date = end
        self.filters = ReportFilters()
        self.reports: Dict[str, List[ApiModel]] = {name: [] for name in REPORTS}
        self.errors: Dict[str, str] = {}
        self.loading = False

    def _parse(self, name: str, model: Type[ApiModel], body: Any) -> List[ApiModel]:
        if not isinstance(body, list):
            raise InvalidResponseError(details={"report": name})
        try:
            return [model.model_validate(row) for row in body]
        except ValidationError as e:
            raise InvalidResponseError(
                message=f"Unexpected {name} report data from server",
                details={"report": name, "errors": e.errors(include_url=False)},
            ) from e

    async def load(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> None:
        """Fetch every report; a failed report keeps its previous rows."""
        if start_date is not None:
            self.start_date = start_date
        if end_date is not None:
            self.end_date = end_date
        params = {"startDate": self.start_date.isoformat(), "endDate": self.end_date.isoformat()}

        self.loading = True
        self.errors = {}
        try:
            for name, (model, _) in REPORTS.items():
                try:
                    body = await self.api.get(
                        f"{API}/beds/analytics/{name}",
                        params=params,
                        fallback_message=f"Failed to fetch {name} report",
                    )
                    self.reports[name] = self._parse(name, model, body)
                except BaseClientException as e:
                    logger.error(f"Error fetching {name} analytics: {e.message}")
                    self.errors[name] = e.message
        finally:
            self.loading = False

    def rows(self, name: str) -> List[ApiModel]:
        """Rows of one report after the active filters."""
        _, applicable = REPORTS[name]
        return filters.apply(self.reports[name], *self.filters.predicates(*applicable))

    def set_filter(self, **values: str) -> None:
        for key, value in values.items():
            if key not in ReportFilters.__slots__:
                raise ValueError(f"Unknown filter: {key}")
            setattr(self.filters, key, value or "")

    def clear_filters(self) -> None:
        self.filters = ReportFilters()

    def options(self, field: str) -> List[str]:
        """Distinct values of ``field`` across all reports, for the filter dropdowns."""
        seen = set()
        for rows in self.reports.values():
            for row in rows:
                value = getattr(row, field, None)
                if value:
                    seen.add(value)
        return sorted(seen)

    @property
    def occupancy_summary(self) -> Dict[str, float]:
        return summarize(row.occupancy_rate for row in self.rows("occupancy"))

    @property
    def los_summary(self) -> Dict[str, float]:
        return summarize(row.average_los for row in self.rows("los"))

    @property
    def revenue_summary(self) -> Dict[str, float]:
        return summarize_totals(row.total_revenue for row in self.rows("revenue"))

    @property
    def turnover_summary(self) -> Dict[str, float]:
        return summarize(row.average_turnover_time for row in self.rows("turnover"))
