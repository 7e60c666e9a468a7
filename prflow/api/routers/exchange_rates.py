from fastapi import APIRouter, Depends

from ..deps import get_exchange_rate_resolver
from ...services.currency import ExchangeRateResolver, RateResult

router = APIRouter(prefix="/exchange-rates", tags=["exchange-rates"])


@router.get("/{from_currency}/{to_currency}", response_model=RateResult)
async def get_exchange_rate(
    from_currency: str,
    to_currency: str,
    resolver: ExchangeRateResolver = Depends(get_exchange_rate_resolver),
):
    """
    Resolve the rate used for threshold comparisons between two currencies.

    Always answers; check `source` and `degraded` to see how the rate was found.
    """
    return await resolver.resolve_rate(from_currency, to_currency)
