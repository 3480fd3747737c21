from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Mapping, Union

logger = logging.getLogger(__name__)

DEFAULT_BASE_CURRENCY = "IDR"
DEFAULT_RATES: dict[str, Decimal] = {
    "USD": Decimal("1"),
    "MYR": Decimal("4.7"),
    "IDR": Decimal("15500"),
}

ONE = Decimal("1")


class UnknownCurrency(ValueError):
    """Raised when a currency code has no entry in the rate table."""

    def __init__(self, currency: str) -> None:
        super().__init__(f"Unsupported currency: {currency}")
        self.currency = currency


@dataclass(frozen=True)
class RateTable:
    """Static FX rates anchored on one reference currency.

    Rates are expressed as units of each currency per 1 unit of the anchor,
    so the anchor itself carries a rate of exactly 1.
    """

    rates: Mapping[str, Decimal] = None

    def __post_init__(self) -> None:
        source = DEFAULT_RATES if self.rates is None else self.rates
        parsed: dict[str, Decimal] = {}
        for code, value in source.items():
            rate = _coerce_amount(value)
            if rate <= 0:
                raise ValueError(f"Rate for {code} must be greater than zero.")
            parsed[validate_currency(code)] = rate
        if not any(rate == ONE for rate in parsed.values()):
            raise ValueError("Rate table needs an anchor currency with a rate of 1.")
        object.__setattr__(self, "rates", parsed)

    @property
    def anchor(self) -> str:
        return next(code for code, rate in self.rates.items() if rate == ONE)

    def __contains__(self, currency: object) -> bool:
        return currency in self.rates

    def get_rate(self, currency: str) -> Decimal:
        try:
            return self.rates[currency]
        except KeyError as exc:
            raise UnknownCurrency(currency) from exc

    def with_rate(self, currency: str, rate: Decimal | int | float | str) -> "RateTable":
        code = validate_currency(currency)
        if code == self.anchor and _coerce_amount(rate) != ONE:
            raise ValueError("The anchor currency rate is fixed at 1.")
        updated = dict(self.rates)
        updated[code] = _coerce_amount(rate)
        return RateTable(rates=updated)


RatesLike = Union[RateTable, Mapping[str, Decimal]]


def as_rate_table(rates: RatesLike) -> RateTable:
    if isinstance(rates, RateTable):
        return rates
    return RateTable(rates=rates)


def convert_amount(
    amount: Decimal | int | float | str,
    source_currency: str,
    target_currency: str,
    rates: RatesLike,
) -> Decimal:
    """Convert an amount by pivoting through the anchor currency.

    Same-currency conversions return the amount untouched, even when the code
    is missing from the table. No rounding is applied.
    """
    coerced_amount = _coerce_amount(amount)
    if source_currency == target_currency:
        return coerced_amount

    table = as_rate_table(rates)
    source_rate = table.get_rate(source_currency)
    target_rate = table.get_rate(target_currency)
    amount_in_anchor = coerced_amount / source_rate
    return amount_in_anchor * target_rate


def convert_amount_or_none(
    amount: Decimal | int | float | str,
    source_currency: str,
    target_currency: str,
    rates: RatesLike,
) -> Decimal | None:
    """Display-only conversion: ``None`` instead of raising on unknown codes."""
    try:
        return convert_amount(amount, source_currency, target_currency, rates)
    except UnknownCurrency as exc:
        logger.warning(
            "No rate for %s, cannot show %s -> %s", exc.currency, source_currency, target_currency
        )
        return None


def validate_currency(value: str) -> str:
    normalized = value.strip()
    if not normalized or any(ch.isspace() for ch in normalized):
        raise ValueError("Currency must be a non-empty code without spaces.")
    return normalized


def _coerce_amount(amount: Decimal | int | float | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
