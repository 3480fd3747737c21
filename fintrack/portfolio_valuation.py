from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from fintrack.currency_conversion import RatesLike, convert_amount
from fintrack.records import ZERO, PortfolioItem

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PortfolioStats:
    total_cost: Decimal
    total_value: Decimal
    gain_loss: Decimal
    gain_loss_percent: Decimal


@dataclass(frozen=True)
class HoldingValuation:
    item_id: str
    symbol: str
    currency: str
    market_value: Decimal
    gain_loss: Decimal
    gain_loss_percent: Decimal


def portfolio_stats(
    holdings: Iterable[PortfolioItem],
    rates: RatesLike,
    base_currency: str,
) -> PortfolioStats:
    """Cost, value and return of ``holdings`` in ``base_currency``.

    Values use each item's latest ``current_price``; there is no price
    history, so the result does not depend on any reporting date.
    """
    total_cost = ZERO
    total_value = ZERO
    for item in holdings:
        total_cost += convert_amount(item.cost_basis, item.currency, base_currency, rates)
        total_value += convert_amount(item.market_value, item.currency, base_currency, rates)

    gain_loss = total_value - total_cost
    return PortfolioStats(
        total_cost=total_cost,
        total_value=total_value,
        gain_loss=gain_loss,
        gain_loss_percent=_gain_loss_percent(gain_loss, total_cost),
    )


def value_holding(item: PortfolioItem) -> HoldingValuation:
    market_value = item.market_value
    gain_loss = market_value - item.cost_basis
    return HoldingValuation(
        item_id=item.id,
        symbol=item.symbol,
        currency=item.currency,
        market_value=market_value,
        gain_loss=gain_loss,
        gain_loss_percent=_gain_loss_percent(gain_loss, item.cost_basis),
    )


def _gain_loss_percent(gain_loss: Decimal, cost: Decimal) -> Decimal:
    # Zero cost reports 0% rather than an infinite return.
    if cost > ZERO:
        return gain_loss / cost * HUNDRED
    return ZERO
