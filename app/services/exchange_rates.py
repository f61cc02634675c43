"""
Currency exchange rates from the Frankfurter API (ECB reference rates, no API key)
"""

import logging
from datetime import date as date_type
from typing import Optional, Union

import httpx

from ..cache import cache
from ..config import FRANKFURTER_API_URL

logger = logging.getLogger(__name__)

SUPPORTED_CURRENCIES = ["SEK", "EUR", "USD", "GBP", "DKK", "NOK"]

# Dated ECB reference rates never change; "latest" moves once per working day
LATEST_RATE_TTL = 60 * 60
DATED_RATE_TTL = 7 * 24 * 60 * 60


class ExchangeRateError(Exception):
    pass


def _rate_date(on: Optional[Union[str, date_type]]) -> str:
    if on is None:
        return "latest"
    return on.isoformat() if isinstance(on, date_type) else str(on)


async def fetch_rate(from_currency: str, to_currency: str, on: str) -> float:
    """1 unit of from_currency = X units of to_currency"""
    url = f"{FRANKFURTER_API_URL}/{on}"
    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.get(url, params={"from": from_currency, "to": to_currency})

    if response.status_code != 200:
        logger.error(f"❌ Exchange rate request failed ({response.status_code}): {response.text}")
        raise ExchangeRateError(f"Failed to fetch exchange rate: {response.status_code}")

    rate = response.json().get("rates", {}).get(to_currency)
    if rate is None:
        raise ExchangeRateError(f"No rate for {from_currency}→{to_currency} on {on}")
    return float(rate)


async def get_exchange_rate(
    from_currency: str, to_currency: str, on: Optional[Union[str, date_type]] = None
) -> float:
    from_currency = from_currency.upper()
    to_currency = to_currency.upper()
    if from_currency == to_currency:
        return 1.0

    rate_date = _rate_date(on)
    key = f"fx:{from_currency}:{to_currency}:{rate_date}"
    cached = cache.get(key)
    if cached is not None:
        return float(cached)

    rate = await fetch_rate(from_currency, to_currency, rate_date)
    ttl = LATEST_RATE_TTL if rate_date == "latest" else DATED_RATE_TTL
    cache.set(key, rate, ttl)
    logger.info(f"💱 {from_currency}→{to_currency} ({rate_date}): {rate}")
    return rate


async def convert(
    amount: float,
    from_currency: str,
    to_currency: str = "SEK",
    on: Optional[Union[str, date_type]] = None,
) -> dict:
    """Convert `amount`, returning {"converted", "rate"} with the amount rounded to 2 dp"""
    rate = await get_exchange_rate(from_currency, to_currency, on)
    return {"converted": round(amount * rate, 2), "rate": rate}
