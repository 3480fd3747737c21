from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Sequence

from fintrack.currency_conversion import RatesLike
from fintrack.ledger_replay import cash_balance_at, cash_balance_series
from fintrack.periods import month_start
from fintrack.portfolio_valuation import HUNDRED, portfolio_stats
from fintrack.records import ZERO, Account, PortfolioItem, Transaction


@dataclass(frozen=True)
class NetWorthSummary:
    as_of: date
    compare_to: date
    net_worth: Decimal
    previous_net_worth: Decimal
    net_worth_change: Decimal
    cash_balance: Decimal
    previous_cash_balance: Decimal
    cash_change: Decimal


@dataclass(frozen=True)
class NetWorthPoint:
    month: date
    net_worth: Decimal


def net_worth_at(
    accounts: Sequence[Account],
    transactions: Sequence[Transaction],
    holdings: Sequence[PortfolioItem],
    as_of: date,
    rates: RatesLike,
    base_currency: str,
) -> Decimal:
    cash = cash_balance_at(accounts, transactions, as_of, rates, base_currency)
    return cash + portfolio_stats(holdings, rates, base_currency).total_value


def percentage_change(current: Decimal, previous: Decimal) -> Decimal:
    if previous == 0:
        return ZERO
    return (current - previous) / previous * HUNDRED


def summarize(
    accounts: Sequence[Account],
    transactions: Sequence[Transaction],
    holdings: Sequence[PortfolioItem],
    as_of: date,
    compare_to: date,
    rates: RatesLike,
    base_currency: str,
) -> NetWorthSummary:
    """Net worth and cash at two dates, with the change between them.

    ``compare_to`` is usually one month or one year before ``as_of``; the
    portfolio contributes the same current value on both sides.
    """
    portfolio_value = portfolio_stats(holdings, rates, base_currency).total_value
    cash = cash_balance_at(accounts, transactions, as_of, rates, base_currency)
    previous_cash = cash_balance_at(accounts, transactions, compare_to, rates, base_currency)
    net_worth = cash + portfolio_value
    previous_net_worth = previous_cash + portfolio_value
    return NetWorthSummary(
        as_of=as_of,
        compare_to=compare_to,
        net_worth=net_worth,
        previous_net_worth=previous_net_worth,
        net_worth_change=percentage_change(net_worth, previous_net_worth),
        cash_balance=cash,
        previous_cash_balance=previous_cash,
        cash_change=percentage_change(cash, previous_cash),
    )


def net_worth_history(
    accounts: Sequence[Account],
    transactions: Sequence[Transaction],
    holdings: Sequence[PortfolioItem],
    months: Sequence[date],
    rates: RatesLike,
    base_currency: str,
) -> List[NetWorthPoint]:
    portfolio_value = portfolio_stats(holdings, rates, base_currency).total_value
    cash_series = cash_balance_series(accounts, transactions, months, rates, base_currency)
    return [
        NetWorthPoint(month=month_start(month), net_worth=cash + portfolio_value)
        for month, cash in zip(months, cash_series)
    ]
