from .exchange_rates import (
    ConversionResult,
    ExchangeRateCache,
    ExchangeRateCacheEntry,
    ExchangeRateResolver,
    RateResult,
    RateSource,
    ThresholdCheck,
    create_exchange_rate_resolver,
    get_rule_currency,
    normalize_currency,
)

__all__ = [
    "ConversionResult",
    "ExchangeRateCache",
    "ExchangeRateCacheEntry",
    "ExchangeRateResolver",
    "RateResult",
    "RateSource",
    "ThresholdCheck",
    "create_exchange_rate_resolver",
    "get_rule_currency",
    "normalize_currency",
]
