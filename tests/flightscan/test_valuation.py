"""
Tests for flightscan.valuation: is redeeming miles better than paying cash?
"""

import pytest

from flightscan.schema import Direction, FareRecord, FareSource
from flightscan.valuation import DEFAULT_MILES_RATE, calculate_miles_value, valuate


def fare(price=None, miles=None, taxes=0):
    return FareRecord(
        airline="CI",
        direction=Direction.OUTBOUND,
        source=FareSource.BROWSER,
        price=price,
        miles=miles,
        taxes=taxes,
        flight_number="CI100",
    )


class TestCalculateMilesValue:
    def test_poor_redemption(self):
        verdict = calculate_miles_value(miles=50000, taxes=3200, cash_price=18000)
        assert verdict.miles_as_cash == 20000
        assert verdict.total_equivalent == 23200
        assert verdict.savings == 14800
        assert verdict.value_per_mile == 0.296
        assert verdict.worth_it is False
        assert verdict.rate == DEFAULT_MILES_RATE

    def test_good_redemption(self):
        verdict = calculate_miles_value(miles=50000, taxes=3200, cash_price=30000)
        assert verdict.savings == 26800
        assert verdict.value_per_mile == 0.536
        assert verdict.worth_it is True

    def test_zero_miles(self):
        verdict = calculate_miles_value(miles=0, taxes=0, cash_price=10000)
        assert verdict.value_per_mile == 0
        assert verdict.worth_it is False

    def test_break_even_is_not_worth_it(self):
        verdict = calculate_miles_value(miles=10000, taxes=1000, cash_price=5000, rate=0.4)
        assert verdict.value_per_mile == 0.4
        assert verdict.worth_it is False

    def test_custom_rate(self):
        verdict = calculate_miles_value(miles=50000, taxes=3200, cash_price=18000, rate=0.25)
        assert verdict.miles_as_cash == 12500
        assert verdict.worth_it is True

    def test_same_input_same_verdict(self):
        first = calculate_miles_value(35000, 2100, 21000, 0.4)
        second = calculate_miles_value(35000, 2100, 21000, 0.4)
        assert first == second

    def test_to_dict(self):
        d = calculate_miles_value(50000, 3200, 30000).to_dict()
        assert d["worth_it"] is True
        assert d["savings"] == 26800


class TestValuate:
    def test_pairs_cash_and_award(self):
        verdict = valuate(fare(price=18000), fare(miles=50000, taxes=3200))
        assert verdict.value_per_mile == 0.296

    def test_rejects_award_as_cash_side(self):
        with pytest.raises(ValueError, match="not a cash fare"):
            valuate(fare(miles=50000), fare(miles=50000))

    def test_rejects_cash_as_award_side(self):
        with pytest.raises(ValueError, match="not an award fare"):
            valuate(fare(price=18000), fare(price=12000))
