import itertools

import pytest

from hms_client.domain import filters
from hms_client.schemas.bed import Bed, BedStatus


BEDS = [
    Bed(id="b1", bed_number="101A", room_id="r1", status=BedStatus.AVAILABLE, wing="East", floor="1"),
    Bed(id="b2", bed_number="102A", room_id="r1", status=BedStatus.OCCUPIED, wing="East", floor="1"),
    Bed(id="b3", bed_number="201B", room_id="r2", status=BedStatus.AVAILABLE, wing="West", floor="2", bed_type="ICU"),
]

RECORDS = [
    {"id": "1", "createdAt": "2024-03-01T09:00:00Z", "patientName": "Ada Lovelace"},
    {"id": "2", "createdAt": "2024-03-15T12:00:00Z", "patientName": "Alan Turing"},
    {"id": "3", "createdAt": None, "patientName": "Grace Hopper"},
]


@pytest.mark.unit
class TestPredicates:
    """Composable client-side filters."""

    def test_field_equals_accepts_enum_or_value(self) -> None:
        """Test enum members and their raw values filter the same way."""
        by_enum = filters.apply(BEDS, filters.field_equals("status", BedStatus.AVAILABLE))
        by_value = filters.apply(BEDS, filters.field_equals("status", "AVAILABLE"))

        assert [b.id for b in by_enum] == ["b1", "b3"]
        assert by_enum == by_value

    def test_empty_expectation_matches_everything(self) -> None:
        """Test an unset dropdown does not filter."""
        assert filters.apply(BEDS, filters.field_equals("wing", "")) == BEDS
        assert filters.apply(BEDS, filters.field_equals("wing", None)) == BEDS

    def test_text_search_is_case_insensitive(self) -> None:
        """Test substring search across several fields."""
        found = filters.apply(RECORDS, filters.text_search("TURING", "patientName"))

        assert [r["id"] for r in found] == ["2"]

    def test_date_between_is_inclusive(self) -> None:
        """Test both range bounds are included and undated rows excluded."""
        found = filters.apply(RECORDS, filters.date_between("createdAt", "2024-03-01", "2024-03-15"))

        assert [r["id"] for r in found] == ["1", "2"]

    def test_date_between_without_bounds(self) -> None:
        """Test an open range keeps undated rows."""
        assert len(filters.apply(RECORDS, filters.date_between("createdAt"))) == 3

    def test_field_in(self) -> None:
        """Test multi-value membership."""
        found = filters.apply(BEDS, filters.field_in("bed_number", ["101A", "201B"]))

        assert [b.id for b in found] == ["b1", "b3"]

    def test_any_of(self) -> None:
        """Test disjunction of predicates."""
        either = filters.any_of(filters.field_equals("wing", "West"), filters.field_equals("status", "OCCUPIED"))

        assert [b.id for b in filters.apply(BEDS, either)] == ["b2", "b3"]

    def test_order_of_predicates_does_not_matter(self) -> None:
        """Test every permutation of the same predicates gives the same rows."""
        predicates = [
            filters.field_equals("status", "AVAILABLE"),
            filters.field_equals("floor", "2"),
            filters.text_search("b", "bed_number"),
        ]
        results = {
            tuple(b.id for b in filters.apply(BEDS, *perm))
            for perm in itertools.permutations(predicates)
        }

        assert results == {("b3",)}

    def test_criteria_from_keywords(self) -> None:
        """Test keyword criteria skip empty values."""
        found = filters.apply(BEDS, *filters.criteria(wing="East", status=None))

        assert [b.id for b in found] == ["b1", "b2"]
