"""
Emirates Adapter (www.emirates.com)

Most routes from Taiwan connect in Dubai, so stops are common.
"""

from __future__ import annotations

from ..schema import SearchRequest
from .card_text import CardTextAdapter


class EmiratesAdapter(CardTextAdapter):
    code = "EK"
    name = "阿聯酋"
    full_name = "阿聯酋航空"
    booking_url = "https://www.emirates.com/tw/chinese/"

    flight_prefixes = ("EK",)
    results_url_pattern = r"emirates\.com.*book"
    origin_selectors = (
        "input[name='出發機場']",
        "input.js-field-input[placeholder*='出發']",
        "input[aria-label*='出發']",
        "input[aria-label*='origin']",
        "input[placeholder*='From']",
    )
    destination_selectors = (
        "input[name='目的地機場']",
        "input.js-field-input[placeholder*='目的']",
        "input[aria-label*='目的']",
        "input[aria-label*='destination']",
        "input[placeholder*='To']",
    )
    date_selectors = ("#search-flight-date-picker--depart", "input[name*='depart']")

    def booking_link(self, request: SearchRequest) -> str:
        link = (
            f"https://www.emirates.com/tw/chinese/book/?from={request.origin}"
            f"&to={request.destination}&depart={request.depart_date:%Y%m%d}"
        )
        if request.return_date:
            link += f"&return={request.return_date:%Y%m%d}"
        return f"{link}&pax={request.adults}"
