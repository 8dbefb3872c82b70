"""
China Airlines Adapter (www.china-airlines.com)

Cash fares come from the public booking form; award fares need a
Dynasty Flyer login first and then use the same form in award mode.
"""

from __future__ import annotations

import re
from urllib.parse import urlencode

from ..base import FormSearchAdapter, parse_stops
from ..schema import RawFareOffer, SearchRequest

SEARCH_URL = "https://www.china-airlines.com/tw/zh/booking/book-flights/flight-search"

CARD_SELECTOR = ".flight-result, .flight-card, [class*='flightResult'], [class*='flight-item']"
AWARD_CARD_SELECTOR = ".flight-result, .flight-card, [class*='award']"

# One dict per card; fields the card lacks come back empty
CARDS_JS = """
(selector) => {
  const text = (card, sel) => {
    const el = card.querySelector(sel);
    return el ? el.textContent.trim() : '';
  };
  return Array.from(document.querySelectorAll(selector)).map((card) => ({
    flightNumber: text(card, ".flight-number, [class*='flightNo']"),
    departTime: text(card, ".depart-time, [class*='departTime']"),
    arriveTime: text(card, ".arrive-time, [class*='arriveTime']"),
    duration: text(card, ".duration, [class*='duration']"),
    price: text(card, ".price, [class*='price'], .fare"),
    stops: text(card, ".stops, [class*='stop']"),
    cabin: text(card, ".cabin, [class*='cabin']"),
    miles: text(card, ".miles, [class*='mile']"),
    tax: text(card, ".tax, [class*='tax']"),
  }));
}
"""


class ChinaAirlinesAdapter(FormSearchAdapter):
    code = "CI"
    name = "華航"
    full_name = "中華航空"
    booking_url = SEARCH_URL
    award_url = f"{SEARCH_URL}?type=award"
    login_url = "https://www.china-airlines.com/tw/zh/member/login"
    supports_miles = True

    one_way_selectors = ("[data-value='oneWay']", "#oneWay", "input[value='OW']")
    origin_selectors = (
        "#departureCity",
        "input[name='origin']",
        "input[placeholder*='出發']",
        "input[aria-label*='出發']",
    )
    destination_selectors = (
        "#arrivalCity",
        "input[name='destination']",
        "input[placeholder*='目的']",
        "input[aria-label*='目的']",
    )
    airport_option_templates = (
        ".suggestion-item:has-text('{code}')",
        ".dropdown-item:has-text('{code}')",
        "li:has-text('{code}')",
    )
    date_selectors = ("#departureDate", "input[name='departureDate']", "input[aria-label*='出發日期']")
    submit_selectors = (
        "button:has-text('搜尋')",
        "button:has-text('查詢')",
        "button[type='submit'].search-btn",
        ".btn-search",
    )
    result_selectors = (".flight-result", ".flight-card", "[class*='flightResult']", "[class*='flight-item']")
    no_result_selectors = (".no-result", "[class*='noFlight']")
    member_id_selectors = ("#memberId", "input[name='memberId']", "input[placeholder*='會員']")

    def booking_link(self, request: SearchRequest) -> str:
        params = {
            "origin": request.origin,
            "destination": request.destination,
            "departureDate": request.depart_date.isoformat(),
        }
        if request.return_date:
            params["returnDate"] = request.return_date.isoformat()
        params["adults"] = str(request.adults)
        params["cabinClass"] = request.cabin.value
        return f"{SEARCH_URL}?{urlencode(params)}"

    async def extract_results(self, page) -> list[dict]:
        selector = AWARD_CARD_SELECTOR if "type=award" in (page.url or "") else CARD_SELECTOR
        return await page.evaluate(CARDS_JS, selector)

    def parse_cash_results(self, raw: list[dict]) -> list[RawFareOffer]:
        return parse_ci_cards(raw)

    def parse_award_results(self, raw: list[dict]) -> list[RawFareOffer]:
        return parse_ci_award_cards(raw)


# ---------------------------------------------------------------------------
# Pure parsing functions
# ---------------------------------------------------------------------------

def _flight_number(text: str) -> str:
    m = re.search(r"CI\s*\d{2,4}", text or "")
    return m.group(0).replace(" ", "") if m else (text or "").strip()


def parse_ci_cards(cards: list[dict]) -> list[RawFareOffer]:
    """Parse cash fare cards extracted by CARDS_JS."""
    offers = []
    for card in cards:
        price = (card.get("price") or "").strip()
        if not re.search(r"\d", price):
            continue
        offers.append(RawFareOffer(
            airline="CI",
            flight_number=_flight_number(card.get("flightNumber", "")),
            depart_time=card.get("departTime", ""),
            arrive_time=card.get("arriveTime", ""),
            duration_text=card.get("duration", ""),
            price_text=price,
            currency="" if re.search(r"[A-Z$]", price) else "TWD",
            cabin_label=card.get("cabin") or "經濟艙",
            stops=parse_stops(card.get("stops") or "直飛"),
        ))
    return offers


def parse_ci_award_cards(cards: list[dict]) -> list[RawFareOffer]:
    """Parse award cards: mileage in the miles field, taxes in TWD."""
    offers = []
    for card in cards:
        miles = (card.get("miles") or "").strip()
        if not re.search(r"\d", miles):
            continue
        offers.append(RawFareOffer(
            airline="CI",
            flight_number=_flight_number(card.get("flightNumber", "")),
            depart_time=card.get("departTime", ""),
            arrive_time=card.get("arriveTime", ""),
            duration_text=card.get("duration", ""),
            miles_text=miles,
            taxes_text=card.get("tax") or "0",
            currency="TWD",
            cabin_label=card.get("cabin") or "經濟艙",
            stops=parse_stops(card.get("stops") or "直飛"),
        ))
    return offers
