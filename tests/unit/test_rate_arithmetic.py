"""
Unit tests for field ticket rate arithmetic.

Verifies:
- Labor, equipment and material line formulas
- Default overtime, double-time and standby multipliers
- Explicit rate overrides
- Rejection of negative inputs and non-positive regular rates
- No rounding inside the helpers
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from fieldledger_modules.field_tickets.helpers import (
    calculate_equipment_total,
    calculate_labor_total,
    calculate_material_total,
    calculate_ticket_markup,
    equipment_entry_total,
    labor_entry_total,
    material_entry_total,
)
from tests.conftest import sample_equipment, sample_labor, sample_material


def money(min_value="0", max_value="10000"):
    return st.decimals(
        min_value=Decimal(min_value),
        max_value=Decimal(max_value),
        places=2,
        allow_nan=False,
        allow_infinity=False,
    )


class TestLaborTotal:

    def test_overtime_defaults_to_time_and_a_half(self):
        total = calculate_labor_total(
            regular_hours=Decimal("8"),
            regular_rate=Decimal("50"),
            overtime_hours=Decimal("2"),
        )
        assert total == Decimal("550")

    def test_double_time_defaults_to_twice_regular(self):
        total = calculate_labor_total(
            regular_hours=Decimal("0"),
            regular_rate=Decimal("40"),
            double_time_hours=Decimal("3"),
        )
        assert total == Decimal("240")

    def test_explicit_rates_override_multipliers(self):
        total = calculate_labor_total(
            regular_hours=Decimal("8"),
            regular_rate=Decimal("50"),
            overtime_hours=Decimal("2"),
            double_time_hours=Decimal("1"),
            overtime_rate=Decimal("70"),
            double_time_rate=Decimal("90"),
        )
        assert total == Decimal("400") + Decimal("140") + Decimal("90")

    def test_zero_hours_is_zero(self):
        assert calculate_labor_total(Decimal("0"), Decimal("50")) == Decimal("0")

    def test_no_rounding(self):
        total = calculate_labor_total(Decimal("1.333"), Decimal("33.33"))
        assert total == Decimal("1.333") * Decimal("33.33")

    @pytest.mark.parametrize("rate", [Decimal("0"), Decimal("-1")])
    def test_non_positive_regular_rate_rejected(self, rate):
        with pytest.raises(ValueError):
            calculate_labor_total(Decimal("8"), rate)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"regular_hours": Decimal("-1")},
            {"overtime_hours": Decimal("-0.5")},
            {"double_time_hours": Decimal("-2")},
            {"overtime_rate": Decimal("-75")},
            {"double_time_rate": Decimal("-100")},
        ],
    )
    def test_negative_inputs_rejected(self, kwargs):
        args = {"regular_hours": Decimal("8"), "regular_rate": Decimal("50")}
        args.update(kwargs)
        with pytest.raises(ValueError):
            calculate_labor_total(**args)

    def test_entry_wrapper(self):
        assert labor_entry_total(sample_labor()) == Decimal("550")

    @given(hours=money(max_value="24"), rate=money(min_value="0.01"), ot=money(max_value="24"))
    @settings(max_examples=100)
    def test_default_overtime_matches_formula(self, hours, rate, ot):
        total = calculate_labor_total(hours, rate, overtime_hours=ot)
        assert total == hours * rate + ot * rate * Decimal("1.5")


class TestEquipmentTotal:

    def test_standby_defaults_to_half_rate(self):
        total = calculate_equipment_total(
            hours=Decimal("8"),
            hourly_rate=Decimal("150"),
            standby_hours=Decimal("2"),
        )
        assert total == Decimal("1350")

    def test_explicit_standby_rate(self):
        total = calculate_equipment_total(
            hours=Decimal("4"),
            hourly_rate=Decimal("100"),
            standby_hours=Decimal("2"),
            standby_rate=Decimal("10"),
        )
        assert total == Decimal("420")

    def test_zero_hours(self):
        assert calculate_equipment_total(Decimal("0"), Decimal("100")) == Decimal("0")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"hours": Decimal("-1")},
            {"hourly_rate": Decimal("-1")},
            {"standby_hours": Decimal("-1")},
            {"standby_rate": Decimal("-1")},
        ],
    )
    def test_negative_inputs_rejected(self, kwargs):
        args = {"hours": Decimal("8"), "hourly_rate": Decimal("150")}
        args.update(kwargs)
        with pytest.raises(ValueError):
            calculate_equipment_total(**args)

    def test_entry_wrapper(self):
        assert equipment_entry_total(sample_equipment()) == Decimal("1350")


class TestMaterialTotal:

    def test_markup_percentage(self):
        total = calculate_material_total(Decimal("2"), Decimal("800"), Decimal("15"))
        assert total == Decimal("1840")

    def test_zero_markup(self):
        assert calculate_material_total(Decimal("3"), Decimal("12.50")) == Decimal("37.50")

    def test_zero_quantity(self):
        assert calculate_material_total(Decimal("0"), Decimal("800"), Decimal("15")) == 0

    @pytest.mark.parametrize(
        "args",
        [
            (Decimal("-1"), Decimal("800"), Decimal("0")),
            (Decimal("1"), Decimal("-800"), Decimal("0")),
            (Decimal("1"), Decimal("800"), Decimal("-5")),
        ],
    )
    def test_negative_inputs_rejected(self, args):
        with pytest.raises(ValueError):
            calculate_material_total(*args)

    def test_entry_wrapper(self):
        assert material_entry_total(sample_material()) == Decimal("1840")

    @given(qty=money(max_value="1000"), cost=money(), markup=money(max_value="100"))
    @settings(max_examples=100)
    def test_never_below_base_cost(self, qty, cost, markup):
        assert calculate_material_total(qty, cost, markup) >= qty * cost


class TestTicketMarkup:

    def test_percentage_of_subtotal(self):
        assert calculate_ticket_markup(Decimal("3740"), Decimal("10")) == Decimal("374")

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            calculate_ticket_markup(Decimal("100"), Decimal("-1"))
