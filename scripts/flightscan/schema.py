"""
Fare Search Schema

Request, raw-offer and normalized-record types shared by the pool,
the airline adapters, the external fare source and the engine.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, asdict, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional


# Closed airline roster: every code here has an adapter in airlines/.
SUPPORTED_AIRLINES: tuple[str, ...] = ("CI", "BR", "JX", "CX", "SQ", "EK")

AIRLINE_NAMES = {
    "CI": "華航",
    "BR": "長榮",
    "JX": "星宇",
    "CX": "國泰",
    "SQ": "新航",
    "EK": "阿聯酋",
    "TK": "土耳其航空",
    "NH": "全日空",
    "JL": "日航",
    "KE": "大韓航空",
    "IT": "台灣虎航",
    "MM": "樂桃",
    "TR": "酷航",
}

_IATA_RE = re.compile(r"^[A-Z]{3}$")


class Cabin(str, Enum):
    ECONOMY = "ECONOMY"
    PREMIUM_ECONOMY = "PREMIUM_ECONOMY"
    BUSINESS = "BUSINESS"
    FIRST = "FIRST"

    @classmethod
    def from_label(cls, label: str) -> "Cabin":
        """Map a site label (經濟艙, Business, ...) to a cabin; defaults to economy."""
        text = label or ""
        if re.search(r"頭等|first", text, re.IGNORECASE):
            return cls.FIRST
        if re.search(r"豪華經濟|premium", text, re.IGNORECASE):
            return cls.PREMIUM_ECONOMY
        if re.search(r"商務|business", text, re.IGNORECASE):
            return cls.BUSINESS
        return cls.ECONOMY


class Direction(str, Enum):
    OUTBOUND = "outbound"
    INBOUND = "inbound"


class FareSource(str, Enum):
    BROWSER = "browser"
    EXTERNAL_API = "external_api"


class TaskKind(str, Enum):
    CASH = "cash"
    MILES = "miles"
    EXTERNAL = "external"


class FailureKind(str, Enum):
    POOL_EXHAUSTED = "pool_exhausted"
    NAVIGATION_TIMEOUT = "navigation_timeout"
    LAYOUT_CHANGED = "layout_changed"
    AUTHENTICATION_FAILED = "authentication_failed"
    SOURCE_UNAVAILABLE = "source_unavailable"
    RATE_LIMITED = "rate_limited"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class MileageAccount:
    """Member credentials for one airline's redemption search."""

    airline: str
    member_id: str
    password: str = field(repr=False)

    @property
    def is_configured(self) -> bool:
        return bool(self.member_id and self.password)


@dataclass(frozen=True)
class Leg:
    """One direction of a trip, searched as a one-way query."""

    direction: Direction
    origin: str
    destination: str
    date: date


@dataclass
class SearchRequest:
    origin: str
    destination: str
    depart_date: date
    return_date: Optional[date] = None
    adults: int = 1
    cabin: Cabin = Cabin.ECONOMY
    airlines: tuple[str, ...] = ()
    mileage_accounts: Mapping[str, MileageAccount] = field(default_factory=dict)

    def __post_init__(self):
        self.origin = (self.origin or "").strip().upper()
        self.destination = (self.destination or "").strip().upper()
        self.airlines = tuple(code.strip().upper() for code in self.airlines if code and code.strip())
        if not isinstance(self.cabin, Cabin):
            self.cabin = Cabin(str(self.cabin).upper())

    @property
    def is_round_trip(self) -> bool:
        return self.return_date is not None

    @property
    def target_airlines(self) -> tuple[str, ...]:
        """Requested airlines, or the whole roster when none were named."""
        return self.airlines or SUPPORTED_AIRLINES

    def legs(self) -> list[Leg]:
        legs = [Leg(Direction.OUTBOUND, self.origin, self.destination, self.depart_date)]
        if self.return_date is not None:
            legs.append(Leg(Direction.INBOUND, self.destination, self.origin, self.return_date))
        return legs

    def validate(self) -> None:
        """Raise InvalidSearchRequest if the request cannot be searched."""
        from .errors import InvalidSearchRequest

        for label, code in (("origin", self.origin), ("destination", self.destination)):
            if not _IATA_RE.match(code):
                raise InvalidSearchRequest(f"{label} must be a 3-letter IATA code, got {code!r}")
        if self.origin == self.destination:
            raise InvalidSearchRequest(f"origin and destination are both {self.origin}")
        if not isinstance(self.depart_date, date):
            raise InvalidSearchRequest("depart_date must be a date")
        if self.return_date is not None:
            if not isinstance(self.return_date, date):
                raise InvalidSearchRequest("return_date must be a date")
            if self.return_date < self.depart_date:
                raise InvalidSearchRequest(
                    f"return_date {self.return_date} is before depart_date {self.depart_date}"
                )
        if self.adults < 1:
            raise InvalidSearchRequest(f"adults must be at least 1, got {self.adults}")
        unknown = [code for code in self.airlines if code not in SUPPORTED_AIRLINES]
        if unknown:
            raise InvalidSearchRequest(
                f"Unsupported airline(s): {', '.join(unknown)}. "
                f"Available: {', '.join(SUPPORTED_AIRLINES)}"
            )

    @classmethod
    def from_strings(
        cls,
        origin: str,
        destination: str,
        depart_date: str,
        return_date: str | None = None,
        adults: int = 1,
        cabin: str = "ECONOMY",
        airlines: str | list[str] = "",
    ) -> SearchRequest:
        """Build a request from loosely typed input (ISO dates, comma-separated airlines)."""
        from .errors import InvalidSearchRequest

        def _parse(value: str, label: str) -> date:
            try:
                return datetime.strptime(value.strip(), "%Y-%m-%d").date()
            except (AttributeError, ValueError):
                raise InvalidSearchRequest(f"{label} must be a valid YYYY-MM-DD date, got {value!r}")

        if isinstance(airlines, str):
            airlines = [a for a in airlines.split(",") if a.strip()]
        try:
            cabin_value = Cabin(cabin.upper())
        except ValueError:
            raise InvalidSearchRequest(f"Unknown cabin class {cabin!r}")

        return cls(
            origin=origin,
            destination=destination,
            depart_date=_parse(depart_date, "depart_date"),
            return_date=_parse(return_date, "return_date") if return_date else None,
            adults=int(adults),
            cabin=cabin_value,
            airlines=tuple(airlines),
        )

    def to_dict(self) -> dict:
        return {
            "origin": self.origin,
            "destination": self.destination,
            "depart_date": self.depart_date.isoformat(),
            "return_date": self.return_date.isoformat() if self.return_date else None,
            "adults": self.adults,
            "cabin": self.cabin.value,
            "airlines": list(self.airlines),
        }


@dataclass(frozen=True)
class RawFareOffer:
    """
    One unnormalized fare as extracted from a site or API.

    Text fields are kept as seen on the page; the normalizer parses them.
    A cash offer fills price_text, a redemption offer fills miles_text
    (and usually taxes_text).
    """

    airline: str
    flight_number: str = ""
    depart_time: str = ""
    arrive_time: str = ""
    duration_text: str = ""
    price_text: str = ""
    currency: str = ""
    miles_text: str = ""
    taxes_text: str = ""
    cabin_label: str = ""
    stops: int = 0
    fare_basis: str = ""
    direction: Direction = Direction.OUTBOUND
    depart_date: Optional[date] = None
    source: FareSource = FareSource.BROWSER
    fare_scope: str = "one_way"  # one_way | round_trip
    extras: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_miles(self) -> bool:
        return bool(self.miles_text)

    def tagged(self, **changes) -> RawFareOffer:
        return replace(self, **changes)


@dataclass
class FareRecord:
    """Normalized fare. Exactly one of price / miles is set."""

    airline: str
    direction: Direction
    source: FareSource
    price: Optional[int] = None
    currency: str = "TWD"
    miles: Optional[int] = None
    taxes: int = 0
    duration_minutes: Optional[int] = None
    stops: int = 0
    depart_time: str = ""
    arrive_time: str = ""
    arrive_day_offset: int = 0
    depart_date: Optional[date] = None
    flight_number: str = ""
    cabin: Cabin = Cabin.ECONOMY
    fare_basis: str = ""
    fare_scope: str = "one_way"
    fetched_at: str = ""

    def __post_init__(self):
        if (self.price is None) == (self.miles is None):
            raise ValueError(
                f"FareRecord for {self.airline} {self.flight_number} must carry exactly one "
                f"of price or miles (price={self.price}, miles={self.miles})"
            )

    @property
    def is_miles(self) -> bool:
        return self.miles is not None

    @property
    def airline_name(self) -> str:
        return AIRLINE_NAMES.get(self.airline, self.airline)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["direction"] = self.direction.value
        d["source"] = self.source.value
        d["cabin"] = self.cabin.value
        d["depart_date"] = self.depart_date.isoformat() if self.depart_date else None
        # Drop the unused half of the price/miles pair
        if self.is_miles:
            d.pop("price")
        else:
            d.pop("miles")
            d.pop("taxes")
        return d

    @classmethod
    def from_dict(cls, data: dict) -> FareRecord:
        fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        fields["direction"] = Direction(fields.get("direction", "outbound"))
        fields["source"] = FareSource(fields.get("source", "browser"))
        fields["cabin"] = Cabin(fields.get("cabin", "ECONOMY"))
        if fields.get("depart_date"):
            fields["depart_date"] = date.fromisoformat(fields["depart_date"])
        return cls(**fields)


@dataclass(frozen=True)
class ValuationVerdict:
    """Cash-vs-miles comparison for one pair of comparable fares."""

    miles_as_cash: int
    total_equivalent: int
    savings: int
    value_per_mile: float
    worth_it: bool
    rate: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TaskFailure:
    airline: str
    task: TaskKind
    kind: FailureKind
    reason: str = ""
    attempts: int = 1

    def to_dict(self) -> dict:
        return {
            "airline": self.airline,
            "task": self.task.value,
            "kind": self.kind.value,
            "reason": self.reason,
            "attempts": self.attempts,
        }


@dataclass
class SearchResult:
    """
    Outcome of one SearchRequest.

    Holds whatever succeeded plus a failure entry for every task that did
    not. Browser and external-API fares are kept side by side, labelled by
    source; matching them up is left to the caller.
    """

    request: SearchRequest
    outbound: list[FareRecord] = field(default_factory=list)
    inbound: list[FareRecord] = field(default_factory=list)
    failures: list[TaskFailure] = field(default_factory=list)
    succeeded: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    started_at: str = ""
    elapsed_seconds: float = 0.0

    @property
    def records(self) -> list[FareRecord]:
        return self.outbound + self.inbound

    @property
    def is_empty(self) -> bool:
        return not self.outbound and not self.inbound

    def cash_fares(self, direction: Direction = Direction.OUTBOUND) -> list[FareRecord]:
        return [r for r in self._by_direction(direction) if not r.is_miles]

    def miles_fares(self, direction: Direction = Direction.OUTBOUND) -> list[FareRecord]:
        return [r for r in self._by_direction(direction) if r.is_miles]

    def by_source(self, source: FareSource) -> list[FareRecord]:
        return [r for r in self.records if r.source is source]

    def failed_airlines(self) -> list[str]:
        return sorted({f.airline for f in self.failures if f.airline})

    def _by_direction(self, direction: Direction) -> list[FareRecord]:
        return self.outbound if direction is Direction.OUTBOUND else self.inbound

    def to_dict(self) -> dict:
        return {
            "request": self.request.to_dict(),
            "started_at": self.started_at,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "outbound": [r.to_dict() for r in self.outbound],
            "inbound": [r.to_dict() for r in self.inbound],
            "failures": [f.to_dict() for f in self.failures],
            "succeeded": list(self.succeeded),
            "warnings": list(self.warnings),
        }
