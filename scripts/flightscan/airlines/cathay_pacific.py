"""
Cathay Pacific Adapter (www.cathaypacific.com)

Flights are operated by CX and its regional arm KA; fares may be shown
in HKD depending on the point of sale.
"""

from __future__ import annotations

from .card_text import CardTextAdapter


class CathayPacificAdapter(CardTextAdapter):
    code = "CX"
    name = "國泰"
    full_name = "國泰航空"
    booking_url = "https://www.cathaypacific.com/cx/zh_TW.html"
    search_link_base = "https://www.cathaypacific.com/cx/zh_TW/book-a-trip/flight-search.html"

    flight_prefixes = ("CX", "KA")
    price_currencies = ("TWD", "NT$", "NTD", "HKD")
    results_url_pattern = r"cathaypacific\.com.*(book|flight|search|result|availability)"
