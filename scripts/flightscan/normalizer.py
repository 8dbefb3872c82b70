"""
Fare Normalizer

Turns RawFareOffers from the browser adapters and the external API into
FareRecords priced in the reporting currency (TWD), and orders them by cost.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Iterable, Mapping, Optional

from .config import DEFAULT_EXCHANGE_RATES, REPORTING_CURRENCY, Settings
from .schema import Cabin, FareRecord, RawFareOffer
from .valuation import DEFAULT_MILES_RATE

logger = logging.getLogger(__name__)

# Below these a fare is probably a parsing slip (taxes only, a "from" teaser)
SUSPICIOUS_PRICE = 1000
SUSPICIOUS_MILES = 1000

# Currency markers, checked in order; longer markers first
_CURRENCY_MARKERS = [
    (r"NT\$|NTD|TWD|新台幣|元", "TWD"),
    (r"US\$|USD", "USD"),
    (r"HK\$|HKD", "HKD"),
    (r"S\$|SGD", "SGD"),
    (r"€|EUR", "EUR"),
    (r"JP¥|JPY|円", "JPY"),
    (r"₩|KRW", "KRW"),
]

_AMOUNT_RE = re.compile(r"\d[\d,]*(?:\.\d+)?")
_ISO_DURATION_RE = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?$")
_ZH_DURATION_RE = re.compile(r"(?:(\d+)\s*(?:小時|時))?\s*(?:(\d+)\s*分)?")
_EN_DURATION_RE = re.compile(r"(?:(\d+)\s*h(?:ours?|rs?)?)?\s*(?:(\d+)\s*m(?:in(?:utes?|s)?)?)?", re.IGNORECASE)
_CLOCK_RE = re.compile(r"(\d{1,2}):(\d{2})")
_DAY_OFFSET_RE = re.compile(r"\+\s*(\d)")


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------

def detect_currency(text: str, default: str = "TWD") -> str:
    for pattern, code in _CURRENCY_MARKERS:
        if re.search(pattern, text or ""):
            return code
    return default


def parse_amount(text: str) -> Optional[float]:
    """First number in the text, commas removed. None if there is none."""
    m = _AMOUNT_RE.search(text or "")
    if not m:
        return None
    return float(m.group(0).replace(",", ""))


def to_reporting_currency(amount: float, currency: str, rates: Mapping[str, float]) -> int:
    """
    Convert an amount into the reporting currency, rounded to whole units.

    Raises ValueError for a currency with no configured rate.
    """
    rate = rates.get(currency.upper())
    if rate is None:
        raise ValueError(f"no exchange rate configured for {currency}")
    return round(amount * rate)


def parse_money(text: str, currency_hint: str, rates: Mapping[str, float]) -> Optional[int]:
    amount = parse_amount(text)
    if amount is None:
        return None
    currency = detect_currency(text, default=currency_hint or "TWD")
    return to_reporting_currency(amount, currency, rates)


def parse_duration(text: str) -> Optional[int]:
    """
    Minutes from an ISO-8601 (PT12H30M), Chinese (3小時10分) or
    English (3h 10m) duration. None when the text holds no duration.
    """
    text = (text or "").strip()
    if not text:
        return None

    m = _ISO_DURATION_RE.match(text)
    if m and any(m.groups()):
        days, hours, minutes = (int(g or 0) for g in m.groups())
        return days * 1440 + hours * 60 + minutes

    for pattern in (_ZH_DURATION_RE, _EN_DURATION_RE):
        for m in pattern.finditer(text):
            if m.group(1) or m.group(2):
                return int(m.group(1) or 0) * 60 + int(m.group(2) or 0)
    return None


def parse_clock(text: str) -> tuple[str, int]:
    """
    Local time as HH:MM plus a day offset.

    Understands ISO timestamps, "下午 2:05" style 12-hour times and a
    trailing "+1" overnight marker. Returns ("", 0) when no time is found.
    """
    text = (text or "").strip()
    if re.match(r"\d{4}-\d{2}-\d{2}T", text):
        text = text.split("T", 1)[1]
    m = _CLOCK_RE.search(text)
    if not m:
        return "", 0
    hour, minute = int(m.group(1)), int(m.group(2))
    if re.search(r"下午|晚上|PM", text, re.IGNORECASE) and hour < 12:
        hour += 12
    elif re.search(r"上午|凌晨|AM", text, re.IGNORECASE) and hour == 12:
        hour = 0
    offset = _DAY_OFFSET_RE.search(text[m.end():])
    return f"{hour:02d}:{minute:02d}", int(offset.group(1)) if offset else 0


def _iso_date(text: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(text)
    except (TypeError, ValueError):
        return None


def _minutes(clock: str) -> Optional[int]:
    if not clock:
        return None
    hours, minutes = clock.split(":")
    return int(hours) * 60 + int(minutes)


def split_miles(miles_text: str, taxes_text: str) -> tuple[str, str]:
    """Split "50,000 哩 + NT$3,200" into its miles and taxes parts."""
    if taxes_text or "+" not in miles_text:
        return miles_text, taxes_text
    miles_part, _, taxes_part = miles_text.partition("+")
    return miles_part, taxes_part


# ---------------------------------------------------------------------------
# Offer → record
# ---------------------------------------------------------------------------

def normalize_offer(
    offer: RawFareOffer,
    settings: Optional[Settings] = None,
    fetched_at: str = "",
) -> FareRecord:
    """
    Build a FareRecord from one offer.

    Raises ValueError when the offer has neither a usable price nor a
    usable mileage cost, or is priced in a currency without a rate.
    """
    rates = settings.exchange_rates if settings else DEFAULT_EXCHANGE_RATES

    price = miles = None
    taxes = 0
    if offer.is_miles:
        miles_text, taxes_text = split_miles(offer.miles_text, offer.taxes_text)
        amount = parse_amount(miles_text)
        if amount is None or amount <= 0:
            raise ValueError(f"{offer.airline} {offer.flight_number}: unreadable mileage {offer.miles_text!r}")
        miles = int(amount)
        taxes = parse_money(taxes_text, offer.currency, rates) or 0
    else:
        price = parse_money(offer.price_text, offer.currency, rates)
        if price is None or price <= 0:
            raise ValueError(f"{offer.airline} {offer.flight_number}: no price in {offer.price_text!r}")

    depart_time, _ = parse_clock(offer.depart_time)
    arrive_time, day_offset = parse_clock(offer.arrive_time)

    depart_at = _iso_date(offer.depart_time)
    arrive_at = _iso_date(offer.arrive_time)
    if depart_at and arrive_at:
        day_offset = (arrive_at.date() - depart_at.date()).days
    elif day_offset == 0:
        # Arrival earlier than departure with no marker means overnight
        start, end = _minutes(depart_time), _minutes(arrive_time)
        if start is not None and end is not None and end < start:
            day_offset = 1

    duration = parse_duration(offer.duration_text)
    if duration is None:
        duration = _duration_from_clock(depart_time, arrive_time, day_offset)

    return FareRecord(
        airline=offer.airline,
        direction=offer.direction,
        source=offer.source,
        price=price,
        currency=REPORTING_CURRENCY,
        miles=miles,
        taxes=taxes,
        duration_minutes=duration,
        stops=max(offer.stops, 0),
        depart_time=depart_time,
        arrive_time=arrive_time,
        arrive_day_offset=day_offset,
        depart_date=offer.depart_date or (depart_at.date() if depart_at else None),
        flight_number=offer.flight_number,
        cabin=Cabin.from_label(offer.cabin_label),
        fare_basis=offer.fare_basis,
        fare_scope=offer.fare_scope,
        fetched_at=fetched_at or datetime.now().isoformat(timespec="seconds"),
    )


def _duration_from_clock(depart: str, arrive: str, day_offset: int) -> Optional[int]:
    """Elapsed local time; only a fallback since it ignores time zones."""
    start, end = _minutes(depart), _minutes(arrive)
    if start is None or end is None:
        return None
    elapsed = end + day_offset * 1440 - start
    return elapsed if elapsed > 0 else None


def validate_record(record: FareRecord) -> list[str]:
    """
    Sanity warnings for a normalized record.

    Does not raise: a cheap-looking fare may still be real, so it is
    reported rather than dropped.
    """
    warnings = []
    label = f"{record.airline} {record.flight_number}".strip()
    if record.price is not None and record.price < SUSPICIOUS_PRICE:
        warnings.append(f"{label}: price suspiciously low: {record.price}")
    if record.miles is not None and record.miles < SUSPICIOUS_MILES:
        warnings.append(f"{label}: mileage suspiciously low: {record.miles}")
    if not record.depart_time:
        warnings.append(f"{label}: missing departure time")
    return warnings


def normalize_offers(
    offers: Iterable[RawFareOffer],
    settings: Optional[Settings] = None,
    fetched_at: str = "",
) -> tuple[list[FareRecord], list[str]]:
    """Normalize many offers; unusable ones are dropped and reported as warnings."""
    records, warnings = [], []
    for offer in offers:
        try:
            record = normalize_offer(offer, settings, fetched_at)
        except ValueError as e:
            logger.warning("Dropping offer: %s", e)
            warnings.append(f"dropped: {e}")
            continue
        records.append(record)
        warnings.extend(validate_record(record))
    return records, warnings


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

def normalized_cost(record: FareRecord, rate: float = DEFAULT_MILES_RATE) -> float:
    """Cash price, or the cash equivalent of miles plus taxes."""
    if record.price is not None:
        return float(record.price)
    return record.miles * rate + record.taxes


def sort_key(record: FareRecord, rate: float = DEFAULT_MILES_RATE) -> tuple:
    departure = _minutes(record.depart_time)
    return (
        normalized_cost(record, rate),
        record.stops,
        departure if departure is not None else 24 * 60,
    )


def sort_records(records: Iterable[FareRecord], rate: float = DEFAULT_MILES_RATE) -> list[FareRecord]:
    """Cheapest first; ties go to fewer stops, then the earlier departure."""
    return sorted(records, key=lambda r: sort_key(r, rate))
