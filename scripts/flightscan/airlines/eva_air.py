"""
EVA Air Adapter (www.evaair.com)

The search form lives on the homepage; results open on
digital.evaair.com, which runs the Amadeus refx booking platform.
"""

from __future__ import annotations

from ..base import FormSearchAdapter, click_first, fill_airport, human_delay, set_input_value
from ..schema import RawFareOffer

# Each card lists one button per fare family with the amount in data-amount
REFX_CARDS_JS = """
() => Array.from(document.querySelectorAll('.basic-flight-card-layout-top-section-container')).map((card) => {
  const text = (sel) => card.querySelector(sel)?.textContent.trim() || '';
  const stopContainer = card.querySelector('.bound-nb-stop-container');
  const hasStops = stopContainer?.classList.contains('has-stops') || false;
  return {
    depTime: text('.bound-departure-datetime'),
    arrTime: text('.bound-arrival-datetime'),
    duration: text('.duration-value'),
    flightNumbers: Array.from(card.querySelectorAll('.operating-airline-multiline, .flight-number'))
      .map((el) => el.textContent.trim()).filter(Boolean),
    stops: hasStops ? (stopContainer.querySelector('.nb-stop-shape')?.textContent.trim() || '1') : '0',
    seatsLeft: text('.ribbon'),
    fares: Array.from(card.querySelectorAll('button.flight-card-button-desktop-view')).map((btn) => ({
      name: btn.querySelector('.refx-fare-family-flight-card-name')?.textContent.trim() || '',
      amount: btn.querySelector('[data-amount]')?.getAttribute('data-amount') || '',
      currency: btn.querySelector('[data-currency]')?.getAttribute('data-currency') || '',
      mixCabin: btn.querySelector('[class*="mix"]')?.textContent.trim() || '',
    })),
  };
})
"""


class EvaAirAdapter(FormSearchAdapter):
    code = "BR"
    name = "長榮"
    full_name = "長榮航空"
    booking_url = "https://www.evaair.com/zh-tw/index.html"

    one_way_selectors = ("input[type='radio'][value='O']", "label:has-text('單程') input")
    origin_selectors = ("#booking_online_txt_From",)
    destination_selectors = ("#booking_online_txt_To",)
    airport_option_templates = ("ul.ui-autocomplete li",)
    date_selectors = ("#booking_online_txt_date1",)
    date_format = "%Y-%m-%d"
    adults_selectors = ("#booking_online_wuc_Passengers_txt_Adult",)
    submit_selectors = ("#btn_ok",)
    results_url_pattern = r"digital\.evaair\.com"
    result_selectors = (".basic-flight-card-layout-top-section-container",)
    no_result_selectors = (".no-flight-available", "[class*='no-results']", "refx-no-flights-found")

    async def fill_search_form(self, page, origin, destination, depart_date, adults) -> None:
        # Booking panel and ticket tab are collapsed on some visits
        await click_first(page, ("#bookingTab",))
        await click_first(page, ("#ticketTab",), timeout=2000)
        await click_first(page, self.one_way_selectors, timeout=2000)
        await human_delay(page, 300, 600)

        await fill_airport(page, self.origin_selectors, self.airport_option_templates, origin, self.code)
        await fill_airport(page, self.destination_selectors, self.airport_option_templates, destination, self.code)
        await set_input_value(page, self.date_selectors, depart_date.strftime(self.date_format), self.code)
        await human_delay(page, 300, 600)

        if adults > 1:
            field = await page.query_selector(self.adults_selectors[0])
            if field is not None:
                await field.fill(str(adults))

    async def extract_results(self, page) -> list[dict]:
        return await page.evaluate(REFX_CARDS_JS)

    def parse_cash_results(self, raw: list[dict]) -> list[RawFareOffer]:
        return parse_refx_cards(raw, "BR")


# ---------------------------------------------------------------------------
# Pure parsing functions
# ---------------------------------------------------------------------------

def parse_refx_cards(cards: list[dict], airline: str) -> list[RawFareOffer]:
    """
    Split refx flight cards into one offer per bookable fare family.

    Fare buttons without a positive amount are sold out and skipped.
    """
    offers = []
    for card in cards:
        flight_number = " / ".join(card.get("flightNumbers") or [])
        try:
            stops = int(str(card.get("stops") or "0").strip() or 0)
        except ValueError:
            stops = 1
        for fare in card.get("fares") or []:
            amount = str(fare.get("amount") or "").replace(",", "").strip()
            try:
                if float(amount) <= 0:
                    continue
            except ValueError:
                continue
            extras = {}
            if card.get("seatsLeft"):
                extras["seats_left"] = card["seatsLeft"]
            # Mixed-cabin notes would confuse cabin detection, keep them aside
            if fare.get("mixCabin"):
                extras["mixed_cabin"] = fare["mixCabin"]
            offers.append(RawFareOffer(
                airline=airline,
                flight_number=flight_number,
                depart_time=card.get("depTime", ""),
                arrive_time=card.get("arrTime", ""),
                duration_text=card.get("duration", ""),
                price_text=amount,
                currency=fare.get("currency") or "TWD",
                cabin_label=fare.get("name", ""),
                stops=stops,
                extras=extras,
            ))
    return offers
