"""
Ledger Replay

Rebuilds balances from the transaction log. Balances are month-end
snapshots: a query for any day of a month includes every transaction dated
on or before the last day of that month, so the same month always yields the
same figure regardless of the day asked for.
"""

from __future__ import annotations

from bisect import bisect_right
from datetime import date
from decimal import Decimal
import logging
from typing import Iterable, List, Sequence

from fintrack.currency_conversion import RatesLike, convert_amount
from fintrack.periods import month_end, month_start
from fintrack.records import ZERO, Account, Transaction, TransactionType

logger = logging.getLogger(__name__)


class DanglingAccountReference(ValueError):
    """Raised when a transaction points at an account that is not loaded."""

    def __init__(self, transaction_id: str, account_id: str) -> None:
        super().__init__(
            f"Transaction {transaction_id} references unknown account {account_id}."
        )
        self.transaction_id = transaction_id
        self.account_id = account_id


def account_balance_at(
    account: Account,
    transactions: Iterable[Transaction],
    as_of: date,
) -> Decimal:
    """Balance of ``account`` at the end of ``as_of``'s month, in its own currency."""
    cutoff = month_end(as_of)
    total = ZERO
    for txn in transactions:
        if txn.date > cutoff:
            continue
        total += transaction_effect(txn, account.id)
    return account.initial_balance + total


def cash_balance_at(
    accounts: Sequence[Account],
    transactions: Sequence[Transaction],
    as_of: date,
    rates: RatesLike,
    base_currency: str,
) -> Decimal:
    """Sum of every account's month-end balance, converted to ``base_currency``.

    Each account is replayed on its own and converted afterwards, so a
    cross-currency transfer contributes its outgoing leg at the source
    currency and its incoming leg at the destination currency. The total is
    not expected to conserve value across such transfers. Transactions that
    reference an account missing from ``accounts`` are left out entirely.
    """
    known = known_transactions(accounts, transactions)
    total = ZERO
    for account in accounts:
        balance = account_balance_at(account, known, as_of)
        total += convert_amount(balance, account.currency, base_currency, rates)
    return total


def account_balance_series(
    account: Account,
    transactions: Iterable[Transaction],
    months: Sequence[date],
) -> List[Decimal]:
    """Month-end balances for each entry of ``months`` from a single pass.

    Matches calling ``account_balance_at`` once per month.
    """
    deltas: dict[date, Decimal] = {}
    for txn in transactions:
        effect = transaction_effect(txn, account.id)
        if effect:
            key = month_start(txn.date)
            deltas[key] = deltas.get(key, ZERO) + effect

    keys = sorted(deltas)
    running: List[Decimal] = []
    cumulative = ZERO
    for key in keys:
        cumulative += deltas[key]
        running.append(cumulative)

    balances: List[Decimal] = []
    for month in months:
        index = bisect_right(keys, month_start(month))
        folded = running[index - 1] if index else ZERO
        balances.append(account.initial_balance + folded)
    return balances


def cash_balance_series(
    accounts: Sequence[Account],
    transactions: Sequence[Transaction],
    months: Sequence[date],
    rates: RatesLike,
    base_currency: str,
) -> List[Decimal]:
    known = known_transactions(accounts, transactions)
    totals = [ZERO for _ in months]
    for account in accounts:
        series = account_balance_series(account, known, months)
        for index, balance in enumerate(series):
            totals[index] += convert_amount(balance, account.currency, base_currency, rates)
    return totals


def transaction_effect(txn: Transaction, account_id: str) -> Decimal:
    """Signed change ``txn`` makes to ``account_id`` in that account's currency."""
    if txn.is_self_transfer:
        return ZERO
    if txn.type == TransactionType.INCOME:
        return txn.amount if txn.source_account_id == account_id else ZERO
    if txn.type == TransactionType.EXPENSE:
        return -txn.amount if txn.source_account_id == account_id else ZERO
    if txn.source_account_id == account_id:
        return -txn.amount
    if txn.destination_account_id == account_id:
        if txn.destination_amount is not None:
            return txn.destination_amount
        return txn.amount
    return ZERO


def find_dangling_transactions(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
) -> List[Transaction]:
    known_ids = {account.id for account in accounts}
    return [
        txn
        for txn in transactions
        if any(account_id not in known_ids for account_id in txn.account_ids())
    ]


def ensure_account_references(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
) -> None:
    known_ids = {account.id for account in accounts}
    for txn in transactions:
        for account_id in txn.account_ids():
            if account_id not in known_ids:
                raise DanglingAccountReference(txn.id, account_id)


def known_transactions(
    accounts: Sequence[Account],
    transactions: Iterable[Transaction],
) -> List[Transaction]:
    """Transactions whose every referenced account is in ``accounts``."""
    known_ids = {account.id for account in accounts}
    transactions = list(transactions)
    kept = [
        txn
        for txn in transactions
        if all(account_id in known_ids for account_id in txn.account_ids())
    ]
    logger.debug(
        "Replaying %d of %d transactions across %d accounts",
        len(kept),
        len(transactions),
        len(known_ids),
    )
    return kept


def exclude_dangling(
    accounts: Sequence[Account],
    transactions: Iterable[Transaction],
) -> List[Transaction]:
    """Like ``known_transactions`` but logs a warning for each dropped transaction."""
    transactions = list(transactions)
    for txn in find_dangling_transactions(accounts, transactions):
        logger.warning("Excluding transaction %s, it references an unknown account", txn.id)
    return known_transactions(accounts, transactions)
