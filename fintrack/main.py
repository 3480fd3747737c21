import logging
import os
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from fintrack.allocation import (
    asset_allocation,
    expenses_by_category,
    income_expense_totals,
    monthly_cash_flow,
)
from fintrack.currency_conversion import (
    DEFAULT_BASE_CURRENCY,
    DEFAULT_RATES,
    RateTable,
    convert_amount,
    convert_amount_or_none,
    validate_currency,
)
from fintrack.ledger_replay import (
    account_balance_at,
    exclude_dangling,
    find_dangling_transactions,
)
from fintrack.net_worth import net_worth_history, summarize
from fintrack.periods import comparison_date, month_end, parse_month_value, trailing_months
from fintrack.portfolio_valuation import portfolio_stats, value_holding
from fintrack.records import Account, PortfolioItem, Transaction

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI()

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_system_default_currency() -> str:
    raw = os.getenv("DEFAULT_CURRENCY", DEFAULT_BASE_CURRENCY)
    try:
        return validate_currency(raw)
    except ValueError:
        return DEFAULT_BASE_CURRENCY


SYSTEM_DEFAULT_CURRENCY = get_system_default_currency()
HISTORY_MONTHS = 6

DEFAULT_CATEGORIES = [
    "Food",
    "Transport",
    "Housing",
    "Utilities",
    "Entertainment",
    "Health",
    "Salary",
    "Other",
]
DEFAULT_ACCOUNT_TYPES = ["Bank", "Cash", "E-Wallet", "Credit Card", "Investment"]


class AccountPayload(BaseModel):
    id: str
    name: str
    type: str
    initial_balance: Decimal = Decimal("0")
    currency: str

    def to_record(self) -> Account:
        return Account(
            id=self.id,
            name=self.name.strip(),
            type=self.type.strip(),
            initial_balance=self.initial_balance,
            currency=self.currency,
        )


class TransactionPayload(BaseModel):
    id: str
    date: date
    amount: Decimal
    type: str
    category: str = ""
    source_account_id: str
    destination_account_id: str | None = None
    note: str = ""
    destination_amount: Decimal | None = None

    def to_record(self) -> Transaction:
        return Transaction(
            id=self.id,
            date=self.date,
            amount=self.amount,
            type=self.type,
            category=self.category.strip(),
            source_account_id=self.source_account_id,
            destination_account_id=self.destination_account_id,
            note=self.note.strip(),
            destination_amount=self.destination_amount,
        )


class PortfolioItemPayload(BaseModel):
    id: str
    symbol: str
    name: str
    quantity: Decimal
    cost_basis: Decimal
    current_price: Decimal
    currency: str

    def to_record(self) -> PortfolioItem:
        return PortfolioItem(
            id=self.id,
            symbol=self.symbol.strip().upper(),
            name=self.name.strip(),
            quantity=self.quantity,
            cost_basis=self.cost_basis,
            current_price=self.current_price,
            currency=self.currency,
        )


class SettingsPayload(BaseModel):
    base_currency: str = SYSTEM_DEFAULT_CURRENCY
    exchange_rates: dict[str, Decimal] = dict(DEFAULT_RATES)


class SnapshotPayload(BaseModel):
    accounts: list[AccountPayload] = []
    transactions: list[TransactionPayload] = []
    portfolio: list[PortfolioItemPayload] = []
    settings: SettingsPayload = SettingsPayload()
    month: str | None = None


class DashboardPayload(SnapshotPayload):
    mode: str = "MoM"


class ConvertPayload(BaseModel):
    amount: Decimal
    source_currency: str
    target_currency: str
    exchange_rates: dict[str, Decimal] | None = None


class ConvertResponse(BaseModel):
    amount: Decimal
    currency: str


class RateUpdatePayload(BaseModel):
    exchange_rates: dict[str, Decimal]
    currency: str
    rate: Decimal


class RateTableResponse(BaseModel):
    anchor: str
    exchange_rates: dict[str, Decimal]


class SettingsDefaultsResponse(BaseModel):
    base_currency: str
    exchange_rates: dict[str, Decimal]
    categories: list[str]
    account_types: list[str]


class AccountBalanceResponse(BaseModel):
    account_id: str
    name: str
    type: str
    currency: str
    balance: Decimal
    balance_in_base: Decimal | None = None


class AccountBalancesResponse(BaseModel):
    as_of: date
    base_currency: str
    accounts: list[AccountBalanceResponse]
    total: Decimal | None = None


class HoldingResponse(BaseModel):
    id: str
    symbol: str
    name: str
    currency: str
    quantity: Decimal
    cost_basis: Decimal
    current_price: Decimal
    market_value: Decimal
    gain_loss: Decimal
    gain_loss_percent: Decimal


class PortfolioValuationResponse(BaseModel):
    base_currency: str
    holdings: list[HoldingResponse]
    total_cost: Decimal
    total_value: Decimal
    gain_loss: Decimal
    gain_loss_percent: Decimal


class SummaryCardResponse(BaseModel):
    value: Decimal
    change_percent: Decimal


class NetWorthPointResponse(BaseModel):
    month: str
    net_worth: Decimal


class MonthlyStatResponse(BaseModel):
    month: str
    income: Decimal
    expense: Decimal


class BucketResponse(BaseModel):
    name: str
    value: Decimal


class DashboardResponse(BaseModel):
    as_of: date
    compare_to: date
    mode: str
    base_currency: str
    net_worth: SummaryCardResponse
    portfolio: SummaryCardResponse
    cash: SummaryCardResponse
    net_worth_history: list[NetWorthPointResponse]
    monthly_stats: list[MonthlyStatResponse]
    asset_allocation: list[BucketResponse]
    expense_allocation: list[BucketResponse]
    dangling_transaction_ids: list[str]


class TransactionSummaryResponse(BaseModel):
    month: str
    base_currency: str
    income: Decimal
    expense: Decimal
    transaction_count: int


@dataclass(frozen=True)
class Snapshot:
    accounts: list[Account]
    transactions: list[Transaction]
    holdings: list[PortfolioItem]
    rates: RateTable
    base_currency: str
    as_of: date
    dangling_transaction_ids: list[str]


def load_snapshot(payload: SnapshotPayload) -> Snapshot:
    try:
        as_of = month_end(parse_month_value(payload.month)) if payload.month else date.today()
        accounts = [item.to_record() for item in payload.accounts]
        transactions = [item.to_record() for item in payload.transactions]
        dangling = [txn.id for txn in find_dangling_transactions(accounts, transactions)]
        return Snapshot(
            accounts=accounts,
            transactions=exclude_dangling(accounts, transactions),
            holdings=[item.to_record() for item in payload.portfolio],
            rates=RateTable(rates=payload.settings.exchange_rates),
            base_currency=validate_currency(payload.settings.base_currency),
            as_of=as_of,
            dangling_transaction_ids=dangling,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def format_month(value: date) -> str:
    return value.strftime("%Y-%m")


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/settings/defaults", response_model=SettingsDefaultsResponse)
def settings_defaults() -> SettingsDefaultsResponse:
    return SettingsDefaultsResponse(
        base_currency=SYSTEM_DEFAULT_CURRENCY,
        exchange_rates=dict(DEFAULT_RATES),
        categories=list(DEFAULT_CATEGORIES),
        account_types=list(DEFAULT_ACCOUNT_TYPES),
    )


@app.post("/settings/rates", response_model=RateTableResponse)
def update_rate(payload: RateUpdatePayload) -> RateTableResponse:
    try:
        table = RateTable(rates=payload.exchange_rates).with_rate(payload.currency, payload.rate)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return RateTableResponse(anchor=table.anchor, exchange_rates=dict(table.rates))


@app.post("/convert", response_model=ConvertResponse)
def convert(payload: ConvertPayload) -> ConvertResponse:
    rates = payload.exchange_rates if payload.exchange_rates is not None else DEFAULT_RATES
    try:
        amount = convert_amount(
            payload.amount,
            payload.source_currency,
            payload.target_currency,
            rates,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ConvertResponse(amount=amount, currency=payload.target_currency)


@app.post("/accounts/balances", response_model=AccountBalancesResponse)
def account_balances(payload: SnapshotPayload) -> AccountBalancesResponse:
    snapshot = load_snapshot(payload)
    rows: list[AccountBalanceResponse] = []
    for account in snapshot.accounts:
        balance = account_balance_at(account, snapshot.transactions, snapshot.as_of)
        rows.append(
            AccountBalanceResponse(
                account_id=account.id,
                name=account.name,
                type=account.type,
                currency=account.currency,
                balance=balance,
                balance_in_base=convert_amount_or_none(
                    balance, account.currency, snapshot.base_currency, snapshot.rates
                ),
            )
        )

    converted = [row.balance_in_base for row in rows]
    total = sum(converted, Decimal("0")) if None not in converted else None
    return AccountBalancesResponse(
        as_of=snapshot.as_of,
        base_currency=snapshot.base_currency,
        accounts=rows,
        total=total,
    )


@app.post("/portfolio/valuation", response_model=PortfolioValuationResponse)
def portfolio_valuation(payload: SnapshotPayload) -> PortfolioValuationResponse:
    snapshot = load_snapshot(payload)
    try:
        stats = portfolio_stats(snapshot.holdings, snapshot.rates, snapshot.base_currency)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    holdings: list[HoldingResponse] = []
    for item in snapshot.holdings:
        valuation = value_holding(item)
        holdings.append(
            HoldingResponse(
                id=item.id,
                symbol=item.symbol,
                name=item.name,
                currency=item.currency,
                quantity=item.quantity,
                cost_basis=item.cost_basis,
                current_price=item.current_price,
                market_value=valuation.market_value,
                gain_loss=valuation.gain_loss,
                gain_loss_percent=valuation.gain_loss_percent,
            )
        )
    return PortfolioValuationResponse(
        base_currency=snapshot.base_currency,
        holdings=holdings,
        total_cost=stats.total_cost,
        total_value=stats.total_value,
        gain_loss=stats.gain_loss,
        gain_loss_percent=stats.gain_loss_percent,
    )


@app.post("/dashboard", response_model=DashboardResponse)
def dashboard(payload: DashboardPayload) -> DashboardResponse:
    snapshot = load_snapshot(payload)
    accounts = snapshot.accounts
    transactions = snapshot.transactions
    holdings = snapshot.holdings
    rates = snapshot.rates
    base_currency = snapshot.base_currency
    try:
        compare_to = comparison_date(snapshot.as_of, payload.mode)
        months = trailing_months(snapshot.as_of, HISTORY_MONTHS)
        summary = summarize(
            accounts, transactions, holdings, snapshot.as_of, compare_to, rates, base_currency
        )
        stats = portfolio_stats(holdings, rates, base_currency)
        history = net_worth_history(accounts, transactions, holdings, months, rates, base_currency)
        flows = monthly_cash_flow(accounts, transactions, months, rates, base_currency)
        allocation = asset_allocation(
            accounts, transactions, holdings, snapshot.as_of, rates, base_currency
        )
        expenses = expenses_by_category(
            accounts, transactions, snapshot.as_of, rates, base_currency
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return DashboardResponse(
        as_of=snapshot.as_of,
        compare_to=compare_to,
        mode=payload.mode,
        base_currency=base_currency,
        net_worth=SummaryCardResponse(
            value=summary.net_worth, change_percent=summary.net_worth_change
        ),
        portfolio=SummaryCardResponse(
            value=stats.total_value, change_percent=stats.gain_loss_percent
        ),
        cash=SummaryCardResponse(value=summary.cash_balance, change_percent=summary.cash_change),
        net_worth_history=[
            NetWorthPointResponse(month=format_month(point.month), net_worth=point.net_worth)
            for point in history
        ],
        monthly_stats=[
            MonthlyStatResponse(
                month=format_month(flow.month), income=flow.income, expense=flow.expense
            )
            for flow in flows
        ],
        asset_allocation=[
            BucketResponse(name=bucket.name, value=bucket.value) for bucket in allocation
        ],
        expense_allocation=[
            BucketResponse(name=bucket.name, value=bucket.value) for bucket in expenses
        ],
        dangling_transaction_ids=snapshot.dangling_transaction_ids,
    )


@app.post("/transactions/summary", response_model=TransactionSummaryResponse)
def transaction_summary(payload: SnapshotPayload) -> TransactionSummaryResponse:
    snapshot = load_snapshot(payload)
    try:
        totals = income_expense_totals(
            snapshot.accounts,
            snapshot.transactions,
            snapshot.as_of,
            snapshot.rates,
            snapshot.base_currency,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    month_key = format_month(snapshot.as_of)
    count = sum(1 for txn in snapshot.transactions if format_month(txn.date) == month_key)
    return TransactionSummaryResponse(
        month=month_key,
        base_currency=snapshot.base_currency,
        income=totals.income,
        expense=totals.expense,
        transaction_count=count,
    )
