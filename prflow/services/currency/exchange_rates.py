"""
Exchange rate resolution for threshold comparisons.

Rates are resolved through a fixed chain of tiers, first hit wins:

1. Identity (same currency)
2. Pegged pairs (fixed 1:1 currency unions)
3. Live rate table from the rate service (cached per base currency)
4. Cross-conversion through an intermediary currency
5. Static fallback table (direct, then inverse)
6. Persisted rate records in the record store
7. Rate 1 flagged as degraded, so the caller is never blocked

The resolver never raises for lookup failures; callers that care whether
conversion actually happened inspect `source` and `degraded`.
"""

import time
from enum import Enum
from typing import Callable, Iterable, Optional

import httpx
from loguru import logger
from pydantic import BaseModel, Field

from ..storage import RecordStore, RecordStoreError

EXCHANGE_RATES_COLLECTION = "exchangeRates"

# Approximate rates for pairs the rate service does not quote
FALLBACK_RATES: dict[str, dict[str, float]] = {
    "USD": {
        "LSL": 18.5,
        "ZAR": 18.5,
        "NAD": 18.5,
        "SZL": 18.5,
        "BWP": 13.6,
        "EUR": 0.92,
        "XOF": 603.5,
        "XAF": 603.5,
    },
    "EUR": {
        "XOF": 655.957,
        "XAF": 655.957,
        "ZAR": 20.1,
        "LSL": 20.1,
    },
    "GBP": {
        "USD": 1.27,
        "ZAR": 23.5,
        "LSL": 23.5,
    },
}

# Common Monetary Area and CFA franc unions trade at par
PEGGED_PAIRS: frozenset[frozenset[str]] = frozenset(
    frozenset(pair)
    for pair in [
        ("LSL", "ZAR"),
        ("NAD", "ZAR"),
        ("SZL", "ZAR"),
        ("LSL", "NAD"),
        ("LSL", "SZL"),
        ("NAD", "SZL"),
        ("XOF", "XAF"),
    ]
)

DEFAULT_INTERMEDIARIES = ("USD", "EUR", "ZAR")


class RateSource(str, Enum):
    SAME_CURRENCY = "same_currency"
    PEGGED = "pegged"
    LIVE_API = "live_api"
    CROSS_CONVERSION = "cross_conversion"
    FALLBACK_STATIC = "fallback_static"
    PERSISTED_STORE = "persisted_store"


class RateResult(BaseModel):
    rate: float
    source: RateSource
    provider: str | None = None
    from_currency: str
    to_currency: str
    degraded: bool = False


class ConversionResult(BaseModel):
    amount: float
    rate: float
    source: RateSource
    degraded: bool = False


class ThresholdCheck(BaseModel):
    is_above: bool
    converted_amount: float
    threshold_currency: str
    source: RateSource


class ExchangeRateCacheEntry(BaseModel):
    base: str
    rates: dict[str, float] = Field(default_factory=dict)
    fetched_at: float


class ExchangeRateCache:
    """
    One entry per base currency, valid for ttl_seconds.

    A refresh replaces the whole entry. Concurrent refreshes of the same base
    simply overwrite each other; entries are snapshots, so the last write wins.
    """

    def __init__(self, ttl_seconds: float = 3600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, ExchangeRateCacheEntry] = {}

    def get(self, base: str) -> Optional[ExchangeRateCacheEntry]:
        entry = self._entries.get(base)
        if entry is None:
            return None
        if self.clock() - entry.fetched_at >= self.ttl_seconds:
            return None
        return entry

    def put(self, base: str, rates: dict[str, float]) -> ExchangeRateCacheEntry:
        entry = ExchangeRateCacheEntry(base=base, rates=dict(rates), fetched_at=self.clock())
        self._entries[base] = entry
        return entry

    def clear(self) -> None:
        self._entries.clear()


def normalize_currency(code: str | None) -> str:
    """Upper-case, stripped currency code; blank means the default currency"""
    from ...core.config import settings

    code = (code or "").strip().upper()
    return code or settings.default_currency.upper()


def get_rule_currency(rule) -> str:
    """Currency of a rule record, which may carry it as `uom` or `currency`"""
    if rule is None:
        return normalize_currency(None)
    return normalize_currency(getattr(rule, "uom", None) or getattr(rule, "currency", None))


class ExchangeRateResolver:
    def __init__(
        self,
        cache: ExchangeRateCache,
        record_store: Optional[RecordStore] = None,
        fallback_rates: Optional[dict[str, dict[str, float]]] = None,
        pegged_pairs: Optional[Iterable[Iterable[str]]] = None,
        intermediaries: Iterable[str] = DEFAULT_INTERMEDIARIES,
        api_url: str = "https://api.frankfurter.app/latest",
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.cache = cache
        self.record_store = record_store
        self.fallback_rates = FALLBACK_RATES if fallback_rates is None else fallback_rates
        self.pegged_pairs = PEGGED_PAIRS if pegged_pairs is None else frozenset(frozenset(p) for p in pegged_pairs)
        self.intermediaries = tuple(code.upper() for code in intermediaries)
        self.api_url = api_url
        self.timeout = timeout
        self.client = client

    @property
    def provider(self) -> str:
        return httpx.URL(self.api_url).host

    async def resolve_rate(self, from_currency: str | None, to_currency: str | None) -> RateResult:
        src = normalize_currency(from_currency)
        dst = normalize_currency(to_currency)

        if src == dst:
            return RateResult(rate=1.0, source=RateSource.SAME_CURRENCY, from_currency=src, to_currency=dst)

        if self.is_pegged(src, dst):
            return RateResult(rate=1.0, source=RateSource.PEGGED, from_currency=src, to_currency=dst)

        # Live tables fetched during this resolution, so a failing base is tried once
        tables: dict[str, Optional[dict[str, float]]] = {}

        live = await self._live_table(src, tables)
        if live and dst in live:
            return RateResult(
                rate=live[dst],
                source=RateSource.LIVE_API,
                provider=self.provider,
                from_currency=src,
                to_currency=dst,
            )

        cross = await self._cross_rate(src, dst, tables)
        if cross is not None:
            rate, via = cross
            logger.debug("Rate resolved by cross-conversion", from_currency=src, to_currency=dst, via=via)
            return RateResult(
                rate=rate,
                source=RateSource.CROSS_CONVERSION,
                provider=f"via {via}",
                from_currency=src,
                to_currency=dst,
            )

        static = self.static_rate(src, dst)
        if static is not None:
            return RateResult(rate=static, source=RateSource.FALLBACK_STATIC, from_currency=src, to_currency=dst)

        persisted = await self._persisted_rate(src, dst)
        if persisted is not None:
            return RateResult(
                rate=persisted,
                source=RateSource.PERSISTED_STORE,
                provider=EXCHANGE_RATES_COLLECTION,
                from_currency=src,
                to_currency=dst,
            )

        logger.warning("No exchange rate found, using 1:1", from_currency=src, to_currency=dst)
        return RateResult(
            rate=1.0,
            source=RateSource.SAME_CURRENCY,
            from_currency=src,
            to_currency=dst,
            degraded=True,
        )

    async def convert_amount(self, amount: float, from_currency: str | None, to_currency: str | None) -> ConversionResult:
        result = await self.resolve_rate(from_currency, to_currency)
        return ConversionResult(
            amount=amount * result.rate,
            rate=result.rate,
            source=result.source,
            degraded=result.degraded,
        )

    async def is_amount_above_threshold(
        self,
        amount: float,
        amount_currency: str | None,
        threshold: float,
        threshold_currency: str | None,
    ) -> ThresholdCheck:
        target = normalize_currency(threshold_currency)
        converted = await self.convert_amount(amount, amount_currency, target)
        return ThresholdCheck(
            is_above=converted.amount > threshold,
            converted_amount=converted.amount,
            threshold_currency=target,
            source=converted.source,
        )

    def is_pegged(self, src: str, dst: str) -> bool:
        return frozenset((src, dst)) in self.pegged_pairs

    def static_rate(self, src: str, dst: str) -> Optional[float]:
        direct = self.fallback_rates.get(src, {}).get(dst)
        if direct:
            return direct
        inverse = self.fallback_rates.get(dst, {}).get(src)
        if inverse:
            return 1.0 / inverse
        return None

    async def _cross_rate(self, src: str, dst: str, tables: dict) -> Optional[tuple[float, str]]:
        for via in self.intermediaries:
            if via in (src, dst):
                continue
            first = await self._leg_rate(src, via, tables)
            if first is None:
                continue
            second = await self._leg_rate(via, dst, tables)
            if second is None:
                continue
            return first * second, via
        return None

    async def _leg_rate(self, src: str, dst: str, tables: dict) -> Optional[float]:
        if src == dst or self.is_pegged(src, dst):
            return 1.0
        static = self.static_rate(src, dst)
        if static is not None:
            return static
        live = await self._live_table(src, tables)
        if live:
            return live.get(dst)
        return None

    async def _live_table(self, base: str, tables: dict) -> Optional[dict[str, float]]:
        if base in tables:
            return tables[base]

        entry = self.cache.get(base)
        if entry is not None:
            tables[base] = entry.rates
            return entry.rates

        rates = await self._fetch_rates(base)
        if rates is not None:
            self.cache.put(base, rates)
        tables[base] = rates
        return rates

    async def _fetch_rates(self, base: str) -> Optional[dict[str, float]]:
        """Fetch the full rate table for a base currency, None on any failure"""
        try:
            if self.client is not None:
                response = await self.client.get(self.api_url, params={"from": base}, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.api_url, params={"from": base})
            response.raise_for_status()
            payload = response.json()
            rates = {
                code.upper(): float(rate)
                for code, rate in payload["rates"].items()
                if rate and float(rate) > 0
            }
        except httpx.HTTPError as e:
            logger.warning("Rate service unavailable", base=base, error=type(e).__name__)
            return None
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Rate service returned an unexpected payload", base=base, error=type(e).__name__)
            return None

        logger.debug("Fetched live rates", base=base, count=len(rates))
        return rates

    async def _persisted_rate(self, src: str, dst: str) -> Optional[float]:
        if self.record_store is None:
            return None
        try:
            records = await self.record_store.query(EXCHANGE_RATES_COLLECTION)
        except RecordStoreError as e:
            logger.warning("Could not read persisted exchange rates", error=str(e))
            return None

        inverse = None
        for record in records:
            try:
                rec_from = str(record["from"]).strip().upper()
                rec_to = str(record["to"]).strip().upper()
                rate = float(record["rate"])
            except (KeyError, TypeError, ValueError):
                continue
            if rate <= 0:
                continue
            if rec_from == src and rec_to == dst:
                return rate
            if inverse is None and rec_from == dst and rec_to == src:
                inverse = 1.0 / rate
        return inverse


def create_exchange_rate_resolver(
    record_store: Optional[RecordStore] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ExchangeRateResolver:
    """Build a resolver with a fresh cache, configured from settings"""
    from ...core.config import settings

    return ExchangeRateResolver(
        cache=ExchangeRateCache(ttl_seconds=settings.exchange_rate_cache_ttl),
        record_store=record_store,
        api_url=settings.exchange_rate_api_url,
        timeout=settings.exchange_rate_timeout,
        client=client,
    )
