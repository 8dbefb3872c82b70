"""
Card-text adapters

Cathay Pacific, Singapore Airlines and Emirates render results with
obfuscated, frequently renamed class names. Instead of field selectors
these adapters take the text of each result card and pick the flight
out with regular expressions.
"""

from __future__ import annotations

import re
from typing import Sequence
from urllib.parse import urlencode

from ..base import FormSearchAdapter, click_first, extract_card_texts, parse_stops, scroll_page
from ..schema import RawFareOffer, SearchRequest

_TIME_RE = re.compile(r"\b(\d{1,2}:\d{2})\b")
_DURATION_RE = re.compile(r"(\d+)\s*(?:hrs?|h|H|小時|時)(?![A-Za-z])\s*(?:(\d+)\s*(?:mins?|m|M|分)(?![A-Za-z]))?")
_SEATS_RE = re.compile(r"(\d+)\s*(?:seats?|個座位|席)", re.IGNORECASE)

DEFAULT_CARD_SELECTORS = (
    "[class*='flight-card']",
    "[class*='FlightCard']",
    "[class*='flight-result']",
    "[class*='search-result']",
    "[class*='flight-list'] > *",
    "[class*='flight-row']",
    "[data-testid*='flight']",
    "[class*='itinerary']",
    "[class*='journey']",
    "[class*='bound']",
    "tr[class*='flight']",
)


class CardTextAdapter(FormSearchAdapter):
    """Form search whose results are parsed from raw card text."""

    flight_prefixes: Sequence[str] = ()
    price_currencies: Sequence[str] = ("TWD", "NT$", "NTD")
    booking_widget_selectors: Sequence[str] = (
        "[class*='booking-widget']",
        "[class*='BookingWidget']",
        "[data-component*='booking']",
        "#booking-widget",
    )
    result_selectors = DEFAULT_CARD_SELECTORS
    date_format = "%d/%m/%Y"
    submit_selectors = (
        "button:has-text('搜尋')",
        "button:has-text('Search')",
        "button:has-text('查詢航班')",
        "button[type='submit']",
    )
    one_way_selectors = (
        "label:has-text('單程')",
        "input[value*='one']",
        "label:has-text('One-way')",
        "label:has-text('One way')",
        "[data-trip-type*='one']",
    )
    origin_selectors = (
        "input[placeholder*='出發']",
        "input[placeholder*='From']",
        "input[aria-label*='出發']",
        "input[aria-label*='Origin']",
        "input[aria-label*='From']",
        "input[name*='origin']",
        "input[id*='origin']",
        "input[id*='departure']",
        "input[data-testid*='origin']",
    )
    destination_selectors = (
        "input[placeholder*='目的']",
        "input[placeholder*='To']",
        "input[aria-label*='目的']",
        "input[aria-label*='Destination']",
        "input[name*='destination']",
        "input[id*='destination']",
        "input[id*='arrival']",
        "input[data-testid*='destination']",
    )
    airport_option_templates = (
        "[role='option']:has-text('{code}')",
        "li:has-text('{code}')",
        "[class*='suggestion']:has-text('{code}')",
        "[class*='autocomplete']:has-text('{code}')",
    )
    date_selectors = ("input[name*='depart']", "input[id*='depart']")
    search_link_base: str = ""

    async def fill_search_form(self, page, origin, destination, depart_date, adults) -> None:
        await click_first(page, self.booking_widget_selectors)
        await super().fill_search_form(page, origin, destination, depart_date, adults)

    async def extract_results(self, page) -> list[str]:
        # Result lists render lazily as they scroll into view
        await scroll_page(page)
        return await extract_card_texts(page, self.result_selectors)

    def parse_cash_results(self, raw: list[str]) -> list[RawFareOffer]:
        return parse_card_texts(raw, self.code, self.flight_prefixes, self.price_currencies)

    def booking_link(self, request: SearchRequest) -> str:
        params = {
            "origin": request.origin,
            "destination": request.destination,
            "departureDate": request.depart_date.isoformat(),
        }
        if request.return_date:
            params["returnDate"] = request.return_date.isoformat()
        params["adults"] = str(request.adults)
        return f"{self.search_link_base}?{urlencode(params)}"


# ---------------------------------------------------------------------------
# Pure parsing functions
# ---------------------------------------------------------------------------

def parse_card_texts(
    texts: list[str],
    airline: str,
    flight_prefixes: Sequence[str],
    currencies: Sequence[str] = ("TWD", "NT$", "NTD"),
) -> list[RawFareOffer]:
    """
    Parse result-card texts into cash offers.

    Cards without a recognizable price (headers, filter chips, sold-out
    flights) are skipped. Prices in the given currencies keep their sign
    so the normalizer can convert them.
    """
    prefixes = "|".join(re.escape(p) for p in flight_prefixes)
    flight_re = re.compile(rf"\b(?:{prefixes})\s*\d{{2,4}}\b")
    currency_alt = "|".join(re.escape(c) for c in currencies)
    price_re = re.compile(rf"(?:{currency_alt})\s*[\d,]+(?:\.\d+)?")

    offers = []
    for text in texts:
        text = text or ""
        fn = flight_re.search(text)
        price = price_re.search(text)
        if not price:
            # Some sites drop the currency sign next to large amounts
            bare = re.search(r"\b\d{1,3}(?:,\d{3})+\b", text)
            price_text = bare.group(0) if bare else ""
        else:
            price_text = price.group(0)
        if not price_text:
            continue

        times = _TIME_RE.findall(text)
        duration = _DURATION_RE.search(text)
        seats = _SEATS_RE.search(text)
        offers.append(RawFareOffer(
            airline=airline,
            flight_number=fn.group(0).replace(" ", "") if fn else "",
            depart_time=times[0] if times else "",
            arrive_time=times[1] if len(times) > 1 else "",
            duration_text=duration.group(0).strip() if duration else "",
            price_text=price_text,
            currency="" if price else "TWD",
            cabin_label=_cabin_label(text),
            stops=parse_stops(text),
            extras={"seats_left": seats.group(0)} if seats else {},
        ))
    return offers


def _cabin_label(text: str) -> str:
    for pattern, label in (
        (r"商務|Business", "商務艙"),
        (r"頭等|First", "頭等艙"),
        (r"豪華經濟|Premium", "豪華經濟艙"),
    ):
        if re.search(pattern, text, re.IGNORECASE):
            return label
    return "經濟艙"
