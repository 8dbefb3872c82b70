"""
Tests for flightscan.normalizer: price, duration and time parsing plus ordering.
"""

from datetime import date

import pytest

from flightscan.config import Settings
from flightscan.normalizer import (
    detect_currency,
    normalize_offer,
    normalize_offers,
    normalized_cost,
    parse_amount,
    parse_clock,
    parse_duration,
    parse_money,
    sort_records,
    split_miles,
    to_reporting_currency,
    validate_record,
)
from flightscan.schema import Cabin, Direction, FareRecord, FareSource, RawFareOffer

RATES = {"TWD": 1.0, "USD": 32.0, "HKD": 4.1}


def record(airline="CI", price=None, miles=None, taxes=0, stops=0, depart="08:00", flight="CI100"):
    return FareRecord(
        airline=airline,
        direction=Direction.OUTBOUND,
        source=FareSource.BROWSER,
        price=price,
        miles=miles,
        taxes=taxes,
        stops=stops,
        depart_time=depart,
        flight_number=flight,
    )


class TestMoney:
    def test_detect_currency(self):
        assert detect_currency("NT$12,345") == "TWD"
        assert detect_currency("US$ 400") == "USD"
        assert detect_currency("HKD 3,100") == "HKD"
        assert detect_currency("12,000 元") == "TWD"
        assert detect_currency("S$520") == "SGD"
        assert detect_currency("12345", default="EUR") == "EUR"

    def test_parse_amount(self):
        assert parse_amount("NT$12,345") == 12345
        assert parse_amount("TWD 8,999.50") == 8999.5
        assert parse_amount("售完") is None
        assert parse_amount("") is None

    def test_conversion(self):
        assert to_reporting_currency(400, "USD", RATES) == 12800
        assert to_reporting_currency(100.4, "TWD", RATES) == 100

    def test_unknown_currency_raises(self):
        with pytest.raises(ValueError, match="no exchange rate"):
            to_reporting_currency(100, "XYZ", RATES)

    def test_parse_money_uses_hint_without_marker(self):
        assert parse_money("400", "USD", RATES) == 12800
        assert parse_money("NT$5,000", "USD", RATES) == 5000
        assert parse_money("--", "TWD", RATES) is None

    def test_split_miles(self):
        assert split_miles("50,000 哩 + NT$3,200", "") == ("50,000 哩 ", " NT$3,200")
        assert split_miles("50,000", "NT$1,000") == ("50,000", "NT$1,000")


class TestDuration:
    @pytest.mark.parametrize("text,minutes", [
        ("PT3H10M", 190),
        ("PT45M", 45),
        ("P1DT2H", 1560),
        ("3小時10分", 190),
        ("飛行時間 13小時", 780),
        ("3h 10m", 190),
        ("12 hrs 5 mins", 725),
        ("", None),
        ("直飛", None),
    ])
    def test_parse_duration(self, text, minutes):
        assert parse_duration(text) == minutes


class TestClock:
    def test_plain_time(self):
        assert parse_clock("08:05") == ("08:05", 0)

    def test_overnight_marker(self):
        assert parse_clock("06:40+1") == ("06:40", 1)
        assert parse_clock("06:40 (+2)") == ("06:40", 2)

    def test_twelve_hour_labels(self):
        assert parse_clock("下午 2:05") == ("14:05", 0)
        assert parse_clock("上午 12:30") == ("00:30", 0)
        assert parse_clock("9:15 PM") == ("21:15", 0)

    def test_iso_timestamp(self):
        assert parse_clock("2026-03-15T23:50:00") == ("23:50", 0)

    def test_no_time(self):
        assert parse_clock("--") == ("", 0)


class TestNormalizeOffer:
    def test_cash_offer(self):
        offer = RawFareOffer(
            airline="CI",
            flight_number="CI100",
            depart_time="08:00",
            arrive_time="12:10",
            duration_text="3小時10分",
            price_text="NT$12,345",
            cabin_label="商務艙",
            stops=0,
            depart_date=date(2026, 3, 15),
        )
        rec = normalize_offer(offer, fetched_at="2026-03-01T10:00:00")
        assert rec.price == 12345
        assert rec.miles is None
        assert rec.currency == "TWD"
        assert rec.cabin is Cabin.BUSINESS
        assert rec.duration_minutes == 190
        assert rec.depart_date == date(2026, 3, 15)
        assert rec.fetched_at == "2026-03-01T10:00:00"

    def test_foreign_price_converted(self, settings):
        offer = RawFareOffer(airline="CX", price_text="HKD 3,000", depart_time="10:00")
        assert normalize_offer(offer, settings).price == 12300

    def test_currency_field_used_without_marker(self, settings):
        offer = RawFareOffer(airline="EK", price_text="500", currency="USD", depart_time="10:00")
        assert normalize_offer(offer, settings).price == 16000

    def test_prices_always_reported_in_twd(self, monkeypatch):
        monkeypatch.setenv("REPORTING_CURRENCY", "USD")
        settings = Settings(_env_file=None)
        record = normalize_offer(RawFareOffer(airline="EK", price_text="US$500", depart_time="10:00"), settings)
        assert record.price == 16000
        assert record.currency == "TWD"

    def test_miles_offer(self):
        offer = RawFareOffer(airline="CI", miles_text="50,000 哩 + NT$3,200", depart_time="08:00")
        rec = normalize_offer(offer)
        assert rec.miles == 50000
        assert rec.taxes == 3200
        assert rec.price is None
        assert rec.is_miles

    def test_overnight_inferred_from_clock(self):
        offer = RawFareOffer(airline="BR", price_text="NT$20,000", depart_time="23:40", arrive_time="04:10")
        rec = normalize_offer(offer)
        assert rec.arrive_day_offset == 1
        assert rec.duration_minutes == 270

    def test_iso_times_from_api(self):
        offer = RawFareOffer(
            airline="BR",
            price_text="21000",
            currency="TWD",
            depart_time="2026-03-15T23:40:00",
            arrive_time="2026-03-16T07:55:00",
            duration_text="PT5H15M",
            source=FareSource.EXTERNAL_API,
        )
        rec = normalize_offer(offer)
        assert (rec.depart_time, rec.arrive_time, rec.arrive_day_offset) == ("23:40", "07:55", 1)
        assert rec.duration_minutes == 315
        assert rec.depart_date == date(2026, 3, 15)
        assert rec.source is FareSource.EXTERNAL_API

    def test_no_price_raises(self):
        with pytest.raises(ValueError, match="no price"):
            normalize_offer(RawFareOffer(airline="CI", flight_number="CI100", price_text="售完"))

    def test_bad_mileage_raises(self):
        with pytest.raises(ValueError, match="unreadable mileage"):
            normalize_offer(RawFareOffer(airline="CI", miles_text="哩程"))

    def test_unknown_currency_raises(self, settings):
        offer = RawFareOffer(airline="EK", price_text="500", currency="XYZ")
        with pytest.raises(ValueError, match="XYZ"):
            normalize_offer(offer, settings)


class TestNormalizeOffers:
    def test_drops_bad_offers_and_warns(self):
        offers = [
            RawFareOffer(airline="CI", flight_number="CI100", price_text="NT$12,000", depart_time="08:00"),
            RawFareOffer(airline="CI", flight_number="CI102", price_text="售完", depart_time="09:00"),
        ]
        records, warnings = normalize_offers(offers)
        assert [r.flight_number for r in records] == ["CI100"]
        assert len(warnings) == 1
        assert warnings[0].startswith("dropped:")

    def test_suspicious_values_kept_with_warning(self):
        records, warnings = normalize_offers([
            RawFareOffer(airline="CI", flight_number="CI100", price_text="NT$800", depart_time="08:00"),
        ])
        assert records[0].price == 800
        assert any("suspiciously low" in w for w in warnings)

    def test_validate_record(self):
        assert validate_record(record(price=12000)) == []
        assert validate_record(record(miles=500))[0].endswith("mileage suspiciously low: 500")
        assert "missing departure time" in validate_record(record(price=12000, depart=""))[0]


class TestOrdering:
    def test_normalized_cost(self):
        assert normalized_cost(record(price=12000)) == 12000
        assert normalized_cost(record(miles=20000, taxes=3200), rate=0.4) == 11200

    def test_cheapest_first(self):
        records = [record(price=15000, flight="A"), record(price=9000, flight="B"), record(miles=20000, taxes=3200, flight="C")]
        assert [r.flight_number for r in sort_records(records)] == ["B", "C", "A"]

    def test_ties_prefer_fewer_stops_then_earlier_departure(self):
        records = [
            record(price=9000, stops=1, depart="06:00", flight="A"),
            record(price=9000, stops=0, depart="14:00", flight="B"),
            record(price=9000, stops=0, depart="07:30", flight="C"),
            record(price=9000, stops=0, depart="", flight="D"),
        ]
        assert [r.flight_number for r in sort_records(records)] == ["C", "B", "D", "A"]

    def test_rate_changes_order(self):
        cash = record(price=10000, flight="cash")
        award = record(miles=20000, taxes=2000, flight="award")
        assert [r.flight_number for r in sort_records([cash, award], rate=0.3)] == ["award", "cash"]
        assert [r.flight_number for r in sort_records([cash, award], rate=0.5)] == ["cash", "award"]
