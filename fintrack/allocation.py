from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from fintrack.currency_conversion import RatesLike, convert_amount
from fintrack.ledger_replay import account_balance_at, known_transactions
from fintrack.periods import month_end, month_start
from fintrack.portfolio_valuation import portfolio_stats
from fintrack.records import ZERO, Account, PortfolioItem, Transaction, TransactionType

logger = logging.getLogger(__name__)

PORTFOLIO_BUCKET = "Stock Portfolio"
UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class AllocationBucket:
    name: str
    value: Decimal


@dataclass(frozen=True)
class CashFlow:
    income: Decimal
    expense: Decimal


@dataclass(frozen=True)
class MonthlyCashFlow:
    month: date
    income: Decimal
    expense: Decimal


def asset_allocation(
    accounts: Sequence[Account],
    transactions: Sequence[Transaction],
    holdings: Sequence[PortfolioItem],
    as_of: date,
    rates: RatesLike,
    base_currency: str,
) -> List[AllocationBucket]:
    """Balances by account type plus one bucket for the portfolio.

    Buckets keep the order in which their type first appears. The portfolio
    bucket is only added when the portfolio is worth something.
    """
    known = known_transactions(accounts, transactions)
    totals: Dict[str, Decimal] = {}
    for account in accounts:
        balance = account_balance_at(account, known, as_of)
        converted = convert_amount(balance, account.currency, base_currency, rates)
        totals[account.type] = totals.get(account.type, ZERO) + converted

    portfolio_value = portfolio_stats(holdings, rates, base_currency).total_value
    if portfolio_value > ZERO:
        totals[PORTFOLIO_BUCKET] = totals.get(PORTFOLIO_BUCKET, ZERO) + portfolio_value

    return [AllocationBucket(name=name, value=value) for name, value in totals.items()]


def expenses_by_category(
    accounts: Sequence[Account],
    transactions: Iterable[Transaction],
    month: date,
    rates: RatesLike,
    base_currency: str,
) -> List[AllocationBucket]:
    accounts_by_id = {account.id: account for account in accounts}
    totals: Dict[str, Decimal] = {}
    for txn in _in_month(transactions, month):
        if txn.type != TransactionType.EXPENSE:
            continue
        converted = _convert_from_source(txn, accounts_by_id, rates, base_currency)
        if converted is None:
            continue
        category = txn.category.strip() if txn.category else ""
        category = category or UNCATEGORIZED
        totals[category] = totals.get(category, ZERO) + converted

    return sorted(
        (AllocationBucket(name=name, value=value) for name, value in totals.items()),
        key=lambda bucket: bucket.value,
        reverse=True,
    )


def income_expense_totals(
    accounts: Sequence[Account],
    transactions: Iterable[Transaction],
    month: date,
    rates: RatesLike,
    base_currency: str,
) -> CashFlow:
    accounts_by_id = {account.id: account for account in accounts}
    income = ZERO
    expense = ZERO
    for txn in _in_month(transactions, month):
        if txn.is_transfer:
            continue
        converted = _convert_from_source(txn, accounts_by_id, rates, base_currency)
        if converted is None:
            continue
        if txn.type == TransactionType.INCOME:
            income += converted
        else:
            expense += converted
    return CashFlow(income=income, expense=expense)


def monthly_cash_flow(
    accounts: Sequence[Account],
    transactions: Sequence[Transaction],
    months: Sequence[date],
    rates: RatesLike,
    base_currency: str,
) -> List[MonthlyCashFlow]:
    flows: List[MonthlyCashFlow] = []
    for month in months:
        totals = income_expense_totals(accounts, transactions, month, rates, base_currency)
        flows.append(
            MonthlyCashFlow(
                month=month_start(month),
                income=totals.income,
                expense=totals.expense,
            )
        )
    return flows


def _in_month(transactions: Iterable[Transaction], month: date) -> Iterable[Transaction]:
    start = month_start(month)
    end = month_end(month)
    return (txn for txn in transactions if start <= txn.date <= end)


def _convert_from_source(
    txn: Transaction,
    accounts_by_id: Dict[str, Account],
    rates: RatesLike,
    base_currency: str,
) -> Optional[Decimal]:
    account = accounts_by_id.get(txn.source_account_id)
    if account is None:
        logger.warning("Skipping transaction %s with unknown account", txn.id)
        return None
    return convert_amount(txn.amount, account.currency, base_currency, rates)
