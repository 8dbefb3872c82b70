"""
Singapore Airlines Adapter (www.singaporeair.com)

Includes SilkAir-coded (MI) legs on older itineraries.
"""

from __future__ import annotations

from .card_text import CardTextAdapter


class SingaporeAirlinesAdapter(CardTextAdapter):
    code = "SQ"
    name = "新航"
    full_name = "新加坡航空"
    booking_url = "https://www.singaporeair.com/zh_TW/tw/home"
    search_link_base = "https://www.singaporeair.com/zh_TW/tw/book-a-trip/"

    flight_prefixes = ("SQ", "MI")
    price_currencies = ("TWD", "NT$", "NTD", "SGD")
    results_url_pattern = r"singaporeair\.com.*(book|flight|search|result|select)"
    booking_widget_selectors = CardTextAdapter.booking_widget_selectors + ("[class*='book-flight']",)
    origin_selectors = CardTextAdapter.origin_selectors + (
        "input[placeholder*='Leaving']",
        "input[id*='fromCity']",
    )
    destination_selectors = CardTextAdapter.destination_selectors + (
        "input[placeholder*='Going']",
        "input[id*='toCity']",
    )
