"""
STARLUX Adapter (www.starlux-airlines.com)

Vue SPA. Airports are chosen from a modal combobox opened by the
出發地/目的地 buttons, dates are a plain text input, and the results page
marks its elements with data-qa attributes.
"""

from __future__ import annotations

import re

from playwright.async_api import Error as PlaywrightError

from ..base import FormSearchAdapter, human_delay
from ..errors import LayoutChanged
from ..schema import RawFareOffer

# Walk up from each JX flight-number leaf to the card holding the cabin list
STARLUX_CARDS_JS = """
() => {
  const results = [];
  const seen = new Set();
  for (const el of document.querySelectorAll('*')) {
    if (el.children.length > 0) continue;
    const flightNumber = (el.textContent || '').trim();
    if (!/^JX\\d{3,4}$/.test(flightNumber)) continue;

    let card = el.parentElement;
    for (let depth = 0; card && depth < 20; depth++) {
      if (card.querySelector('[data-qa="qa-list-cabins"]')) break;
      card = card.parentElement;
    }
    if (!card || seen.has(card)) continue;
    seen.add(card);

    const cabins = Array.from(card.querySelectorAll('[data-qa="qa-btn-cabin"]')).map((btn) => {
      const label = btn.querySelector('[data-qa="qa-lbl-cabin"]');
      const price = btn.querySelector('[data-qa="qa-lbl-price"]');
      const strong = price ? price.querySelector('strong') : null;
      return {
        cabinName: label ? label.textContent.trim() : '',
        price: (strong || price)?.textContent.trim() || '',
      };
    });
    results.push({ flightNumber, text: card.innerText || card.textContent || '', cabins });
  }
  return results;
}
"""

# Date inputs are recognized by label, placeholder or a yyyy/mm/dd value
SET_TRAVEL_DATE_JS = """
(value) => {
  for (const input of document.querySelectorAll('input')) {
    const label = input.getAttribute('aria-label') || '';
    const placeholder = input.getAttribute('placeholder') || '';
    if (label.includes('日期') || placeholder.includes('日期') || /\\d{4}\\/\\d{2}\\/\\d{2}/.test(input.value || '')) {
      const setter = Object.getOwnPropertyDescriptor(window.HTMLInputElement.prototype, 'value').set;
      setter.call(input, value);
      input.dispatchEvent(new Event('input', { bubbles: true }));
      input.dispatchEvent(new Event('change', { bubbles: true }));
      return true;
    }
  }
  return false;
}
"""

SELECT_ONE_WAY_JS = """
() => {
  for (const sel of document.querySelectorAll('select')) {
    if ([...sel.options].some((o) => o.value === 'one-way')) {
      sel.value = 'one-way';
      sel.dispatchEvent(new Event('change', { bubbles: true }));
      return true;
    }
  }
  return false;
}
"""


class StarluxAdapter(FormSearchAdapter):
    code = "JX"
    name = "星宇"
    full_name = "星宇航空"
    booking_url = "https://www.starlux-airlines.com/zh-TW/booking"

    submit_selectors = ("button.w-full:has-text('搜尋')", "button:has-text('搜尋')")
    results_url_pattern = r"search-result"
    result_selectors = ("[data-qa='qa-btn-cabin']",)
    no_result_selectors = ("[class*='no-flight']", "[class*='noFlight']")

    async def fill_search_form(self, page, origin, destination, depart_date, adults) -> None:
        await page.evaluate(SELECT_ONE_WAY_JS)
        await human_delay(page, 300, 600)
        await self._select_airport(page, "出發地", origin)
        await self._select_airport(page, "目的地", destination)

        if not await page.evaluate(SET_TRAVEL_DATE_JS, depart_date.strftime("%Y/%m/%d")):
            raise LayoutChanged("travel date input not found", self.code)
        await page.keyboard.press("Escape")
        await human_delay(page, 500, 1000)

    async def _select_airport(self, page, label: str, code: str) -> None:
        try:
            trigger = await page.wait_for_selector(f"button:has-text('{label}')", state="visible", timeout=5000)
            await trigger.click()
            combobox = await page.wait_for_selector("[role='combobox']", state="visible", timeout=5000)
        except PlaywrightError as e:
            raise LayoutChanged(f"{label} picker not found: {e}", self.code) from e

        await combobox.fill("")
        await combobox.type(code, delay=100)
        await human_delay(page, 1000, 2000)

        option = await page.query_selector(f"[role='option']:has-text('{code}')")
        if option is None:
            option = await page.query_selector("[role='option']")
        if option is not None:
            await option.click()
        else:
            await page.keyboard.press("Enter")
        await human_delay(page, 300, 600)

    async def extract_results(self, page) -> list[dict]:
        return await page.evaluate(STARLUX_CARDS_JS)

    def parse_cash_results(self, raw: list[dict]) -> list[RawFareOffer]:
        return parse_starlux_cards(raw)


# ---------------------------------------------------------------------------
# Pure parsing functions
# ---------------------------------------------------------------------------

def parse_starlux_cards(cards: list[dict]) -> list[RawFareOffer]:
    """One offer per priced cabin of every JX flight card."""
    offers = []
    for card in cards:
        text = card.get("text", "")
        times = re.findall(r"\b(\d{2}:\d{2})\b", text)
        duration = re.search(r"(\d+)\s*小時\s*(\d+)\s*分", text)
        airports = [c for c in re.findall(r"\b([A-Z]{3})\b", text) if not c.startswith("JX")]

        for cabin in card.get("cabins") or []:
            price = (cabin.get("price") or "").strip()
            if not cabin.get("cabinName") or not re.search(r"[1-9]", price):
                continue
            offers.append(RawFareOffer(
                airline="JX",
                flight_number=card.get("flightNumber", ""),
                depart_time=times[0] if times else "",
                arrive_time=times[1] if len(times) > 1 else "",
                duration_text=f"{duration.group(1)}小時{duration.group(2)}分" if duration else "",
                price_text=price,
                currency="TWD",
                cabin_label=cabin["cabinName"],
                stops=0,
                extras={"airports": airports[:2]} if airports else {},
            ))
    return offers
