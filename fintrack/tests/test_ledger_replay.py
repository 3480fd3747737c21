import unittest
from datetime import date, datetime
from decimal import Decimal

from fintrack.currency_conversion import RateTable, UnknownCurrency, convert_amount
from fintrack.ledger_replay import (
    DanglingAccountReference,
    account_balance_at,
    account_balance_series,
    cash_balance_at,
    cash_balance_series,
    ensure_account_references,
    exclude_dangling,
    find_dangling_transactions,
    known_transactions,
)
from fintrack.periods import iter_months
from fintrack.records import Account, Transaction


def make_account(account_id: str, initial: str, currency: str = "USD", kind: str = "Bank") -> Account:
    return Account(
        id=account_id,
        name=account_id.upper(),
        type=kind,
        initial_balance=Decimal(initial),
        currency=currency,
    )


class AccountBalanceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.checking = make_account("a", "100")
        self.savings = make_account("b", "0")
        self.transactions = [
            Transaction(
                id="t1",
                date=date(2024, 5, 3),
                amount=Decimal("50"),
                type="Income",
                category="Salary",
                source_account_id="a",
            ),
            Transaction(
                id="t2",
                date=date(2024, 5, 10),
                amount=Decimal("30"),
                type="Transfer",
                source_account_id="a",
                destination_account_id="b",
            ),
        ]

    def test_folds_income_and_transfer(self) -> None:
        as_of = date(2024, 5, 31)

        self.assertEqual(
            account_balance_at(self.checking, self.transactions, as_of), Decimal("120")
        )
        self.assertEqual(
            account_balance_at(self.savings, self.transactions, as_of), Decimal("30")
        )

    def test_expense_reduces_source_only(self) -> None:
        transactions = [
            Transaction(
                id="t3",
                date=date(2024, 5, 4),
                amount=Decimal("12.25"),
                type="expense",
                category="Food",
                source_account_id="a",
            )
        ]

        self.assertEqual(
            account_balance_at(self.checking, transactions, date(2024, 5, 4)),
            Decimal("87.75"),
        )
        self.assertEqual(
            account_balance_at(self.savings, transactions, date(2024, 5, 4)),
            Decimal("0"),
        )

    def test_balance_is_stable_within_a_month(self) -> None:
        balances = {
            account_balance_at(self.checking, self.transactions, date(2024, 5, day))
            for day in range(1, 32)
        }

        self.assertEqual(balances, {Decimal("120")})

    def test_accepts_datetime_instant(self) -> None:
        balance = account_balance_at(
            self.checking, self.transactions, datetime(2024, 5, 1, 8, 30)
        )

        self.assertEqual(balance, Decimal("120"))

    def test_excludes_later_months(self) -> None:
        balance = account_balance_at(self.checking, self.transactions, date(2024, 4, 30))

        self.assertEqual(balance, Decimal("100"))

    def test_same_account_transfer_is_a_no_op(self) -> None:
        transactions = [
            Transaction(
                id="t4",
                date=date(2024, 5, 4),
                amount=Decimal("40"),
                type="Transfer",
                source_account_id="a",
                destination_account_id="a",
                destination_amount=Decimal("35"),
            )
        ]

        self.assertEqual(
            account_balance_at(self.checking, transactions, date(2024, 5, 31)),
            Decimal("100"),
        )
        self.assertEqual(
            account_balance_at(self.savings, transactions, date(2024, 5, 31)),
            Decimal("0"),
        )

    def test_does_not_mutate_inputs(self) -> None:
        snapshot = list(self.transactions)

        account_balance_at(self.checking, self.transactions, date(2024, 5, 31))

        self.assertEqual(self.transactions, snapshot)


class CrossCurrencyTransferTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rates = RateTable(rates={"USD": Decimal("1"), "EUR": Decimal("0.9")})
        self.usd = make_account("usd", "100", "USD")
        self.eur = make_account("eur", "0", "EUR")
        self.transfer = Transaction(
            id="x1",
            date=date(2024, 6, 15),
            amount=Decimal("10"),
            type="Transfer",
            source_account_id="usd",
            destination_account_id="eur",
            destination_amount=Decimal("9"),
        )

    def test_each_leg_uses_its_own_currency(self) -> None:
        as_of = date(2024, 6, 30)

        self.assertEqual(account_balance_at(self.usd, [self.transfer], as_of), Decimal("90"))
        self.assertEqual(account_balance_at(self.eur, [self.transfer], as_of), Decimal("9"))

    def test_cash_balance_sums_converted_accounts(self) -> None:
        cash = cash_balance_at(
            [self.usd, self.eur], [self.transfer], date(2024, 6, 30), self.rates, "USD"
        )

        self.assertEqual(cash, Decimal("90") + convert_amount(Decimal("9"), "EUR", "USD", self.rates))

    def test_value_is_not_conserved(self) -> None:
        transfer = Transaction(
            id="x2",
            date=date(2024, 6, 15),
            amount=Decimal("10"),
            type="Transfer",
            source_account_id="usd",
            destination_account_id="eur",
            destination_amount=Decimal("8"),
        )

        cash = cash_balance_at(
            [self.usd, self.eur], [transfer], date(2024, 6, 30), self.rates, "USD"
        )

        self.assertNotEqual(cash, Decimal("100"))
        self.assertLess(cash, Decimal("100"))

    def test_missing_destination_amount_credits_source_amount(self) -> None:
        transfer = Transaction(
            id="x3",
            date=date(2024, 6, 15),
            amount=Decimal("10"),
            type="Transfer",
            source_account_id="usd",
            destination_account_id="eur",
        )

        self.assertEqual(account_balance_at(self.eur, [transfer], date(2024, 6, 1)), Decimal("10"))

    def test_base_currency_need_not_be_anchor(self) -> None:
        cash = cash_balance_at(
            [self.usd, self.eur], [self.transfer], date(2024, 6, 30), self.rates, "EUR"
        )

        self.assertEqual(cash, Decimal("90") * Decimal("0.9") + Decimal("9"))

    def test_unknown_account_currency_is_surfaced(self) -> None:
        stray = make_account("sgd", "5", "SGD")

        with self.assertRaises(UnknownCurrency):
            cash_balance_at([self.usd, stray], [], date(2024, 6, 30), self.rates, "USD")


class DanglingReferenceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.account = make_account("a", "100")
        self.transactions = [
            Transaction(
                id="ok",
                date=date(2024, 1, 2),
                amount=Decimal("5"),
                type="Expense",
                source_account_id="a",
            ),
            Transaction(
                id="gone",
                date=date(2024, 1, 3),
                amount=Decimal("20"),
                type="Transfer",
                source_account_id="a",
                destination_account_id="closed",
            ),
            Transaction(
                id="orphan",
                date=date(2024, 1, 4),
                amount=Decimal("70"),
                type="Income",
                source_account_id="missing",
            ),
        ]

    def test_lists_dangling_transactions(self) -> None:
        dangling = find_dangling_transactions([self.account], self.transactions)

        self.assertEqual([txn.id for txn in dangling], ["gone", "orphan"])

    def test_cash_balance_excludes_dangling_transactions(self) -> None:
        rates = RateTable(rates={"USD": 1})

        cash = cash_balance_at([self.account], self.transactions, date(2024, 1, 31), rates, "USD")

        self.assertEqual(cash, Decimal("95"))

    def test_transfer_from_deleted_account_is_not_credited(self) -> None:
        target = make_account("a", "0")
        transactions = [
            Transaction(
                id="in",
                date=date(2024, 1, 3),
                amount=Decimal("50"),
                type="Transfer",
                source_account_id="deleted",
                destination_account_id="a",
            )
        ]

        cash = cash_balance_at([target], transactions, date(2024, 1, 31), {"USD": 1}, "USD")

        self.assertEqual(cash, Decimal("0"))

    def test_cash_series_excludes_dangling_transactions(self) -> None:
        months = [date(2023, 12, 1), date(2024, 1, 1)]

        series = cash_balance_series([self.account], self.transactions, months, {"USD": 1}, "USD")

        self.assertEqual(series, [Decimal("100"), Decimal("95")])

    def test_known_transactions_logs_scope_at_debug(self) -> None:
        with self.assertLogs("fintrack.ledger_replay", level="DEBUG") as logs:
            kept = known_transactions([self.account], self.transactions)

        self.assertEqual([txn.id for txn in kept], ["ok"])
        self.assertEqual(len(logs.records), 1)
        self.assertEqual(logs.records[0].levelname, "DEBUG")

    def test_exclude_dangling_warns_once_per_transaction(self) -> None:
        with self.assertLogs("fintrack.ledger_replay", level="WARNING") as logs:
            kept = exclude_dangling([self.account], self.transactions)

        self.assertEqual([txn.id for txn in kept], ["ok"])
        self.assertEqual(len(logs.records), 2)
        self.assertIn("gone", logs.output[0])
        self.assertIn("orphan", logs.output[1])

    def test_strict_check_raises(self) -> None:
        with self.assertRaises(DanglingAccountReference) as ctx:
            ensure_account_references([self.account], self.transactions)

        self.assertEqual(ctx.exception.transaction_id, "gone")
        self.assertEqual(ctx.exception.account_id, "closed")

    def test_strict_check_passes_on_clean_data(self) -> None:
        ensure_account_references([self.account], self.transactions[:1])


class BalanceSeriesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rates = RateTable(rates={"USD": Decimal("1"), "MYR": Decimal("4.7")})
        self.accounts = [
            make_account("a", "1000", "USD"),
            make_account("b", "250", "MYR", kind="Cash"),
        ]
        self.transactions = [
            Transaction(id="1", date=date(2023, 11, 20), amount="300", type="Income", source_account_id="a"),
            Transaction(id="2", date=date(2024, 1, 5), amount="45.10", type="Expense", source_account_id="b"),
            Transaction(
                id="3",
                date=date(2024, 1, 31),
                amount="100",
                type="Transfer",
                source_account_id="a",
                destination_account_id="b",
                destination_amount="470",
            ),
            Transaction(id="4", date=date(2024, 3, 1), amount="20", type="Expense", source_account_id="a"),
            Transaction(id="5", date=date(2024, 6, 1), amount="999", type="Income", source_account_id="a"),
        ]
        self.months = iter_months(date(2023, 10, 1), date(2024, 4, 1))

    def test_account_series_matches_naive_fold(self) -> None:
        for account in self.accounts:
            series = account_balance_series(account, self.transactions, self.months)
            expected = [
                account_balance_at(account, self.transactions, month) for month in self.months
            ]
            self.assertEqual(series, expected)

    def test_series_handles_unsorted_months(self) -> None:
        months = [date(2024, 3, 15), date(2023, 10, 1), date(2024, 1, 31)]

        series = account_balance_series(self.accounts[0], self.transactions, months)

        self.assertEqual(series, [Decimal("1180"), Decimal("1000"), Decimal("1200")])

    def test_cash_series_matches_naive_fold(self) -> None:
        series = cash_balance_series(
            self.accounts, self.transactions, self.months, self.rates, "MYR"
        )
        expected = [
            cash_balance_at(self.accounts, self.transactions, month, self.rates, "MYR")
            for month in self.months
        ]

        self.assertEqual(series, expected)


if __name__ == "__main__":
    unittest.main()
