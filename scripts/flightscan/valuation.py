"""
Miles valuation

Is redeeming miles better than paying cash? Compares one cash fare with
one award fare the caller judged comparable (same airline, date, cabin);
nothing here tries to pair fares automatically.
"""

from __future__ import annotations

from .schema import FareRecord, ValuationVerdict

DEFAULT_MILES_RATE = 0.4  # NT$ per mile


def calculate_miles_value(
    miles: int,
    taxes: int,
    cash_price: int,
    rate: float = DEFAULT_MILES_RATE,
) -> ValuationVerdict:
    """
    Value of a redemption against its cash alternative.

    miles_as_cash = miles × rate
    total_equivalent = miles_as_cash + taxes
    savings = cash_price − taxes
    value_per_mile = savings / miles (0 for zero miles)
    worth_it when value_per_mile beats the rate.
    """
    miles_as_cash = miles * rate
    savings = cash_price - taxes
    value_per_mile = savings / miles if miles > 0 else 0.0
    return ValuationVerdict(
        miles_as_cash=round(miles_as_cash),
        total_equivalent=round(miles_as_cash + taxes),
        savings=round(savings),
        value_per_mile=round(value_per_mile, 4),
        worth_it=value_per_mile > rate,
        rate=rate,
    )


def valuate(cash_fare: FareRecord, miles_fare: FareRecord, rate: float = DEFAULT_MILES_RATE) -> ValuationVerdict:
    """Verdict for a cash fare and a comparable award fare."""
    if cash_fare.price is None:
        raise ValueError(f"{cash_fare.airline} {cash_fare.flight_number} is not a cash fare")
    if miles_fare.miles is None:
        raise ValueError(f"{miles_fare.airline} {miles_fare.flight_number} is not an award fare")
    return calculate_miles_value(miles_fare.miles, miles_fare.taxes, cash_fare.price, rate)
