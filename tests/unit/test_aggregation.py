"""Tests for multi-procedure aggregation."""

from decimal import Decimal

import pytest

from agenda.core.scheduling.aggregation import aggregate_procedures, normalize_procedure_ids
from agenda.core.scheduling.errors import InvalidProcedureError, ValidationError
from agenda.core.scheduling.models import Procedure
from tests.fakes import PROCEDURES


class TestNormalizeProcedureIds:
    """Id list cleanup."""

    def test_dedupes_keeping_order(self):
        assert normalize_procedure_ids(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]

    def test_drops_blank_and_zero(self):
        assert normalize_procedure_ids([None, "", "0", 0, " x "]) == ["x"]

    def test_integer_ids_become_strings(self):
        assert normalize_procedure_ids([3, 7]) == ["3", "7"]


class TestAggregateProcedures:
    """Duration and price totals."""

    def test_two_procedures(self):
        """30 min at 100.00 plus 45 min at 150.00."""
        totals = aggregate_procedures(["cleaning", "whitening"], PROCEDURES)

        assert totals.total_duration_minutes == 75
        assert totals.total_price == Decimal("250.00")
        assert totals.procedure_ids == ["cleaning", "whitening"]

    def test_duplicates_counted_once(self):
        totals = aggregate_procedures(["cleaning", "cleaning"], PROCEDURES)

        assert totals.total_duration_minutes == 30

    def test_exact_decimal_sum(self):
        catalog = {
            "a": Procedure("a", "A", 10, Decimal("100.10")),
            "b": Procedure("b", "B", 10, Decimal("0.20")),
        }

        totals = aggregate_procedures(["a", "b"], catalog)

        assert totals.total_price == Decimal("100.30")
        assert totals.to_dict()["total_price"] == "100.30"

    def test_empty_selection(self):
        with pytest.raises(ValidationError) as exc_info:
            aggregate_procedures([], PROCEDURES)

        assert exc_info.value.field == "procedureIds"

    def test_unknown_procedure(self):
        with pytest.raises(InvalidProcedureError) as exc_info:
            aggregate_procedures(["cleaning", "nope"], PROCEDURES)

        assert exc_info.value.procedure_ids == ["nope"]

    def test_zero_duration_rejected(self):
        catalog = {"free": Procedure("free", "Free", 0, Decimal("0"))}

        with pytest.raises(ValidationError):
            aggregate_procedures(["free"], catalog)
