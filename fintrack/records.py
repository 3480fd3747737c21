from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from fintrack.currency_conversion import validate_currency
from fintrack.periods import to_date

ZERO = Decimal("0")


class TransactionType:
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    values = {INCOME, EXPENSE, TRANSFER}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError("Invalid transaction type.")
        return normalized


@dataclass(frozen=True)
class Account:
    id: str
    name: str
    type: str
    initial_balance: Decimal
    currency: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "initial_balance", coerce_decimal(self.initial_balance))
        object.__setattr__(self, "currency", validate_currency(self.currency))


@dataclass(frozen=True)
class Transaction:
    id: str
    date: date
    amount: Decimal
    type: str
    source_account_id: str
    category: str = ""
    destination_account_id: Optional[str] = None
    note: str = ""
    destination_amount: Optional[Decimal] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", to_date(self.date))
        object.__setattr__(self, "type", TransactionType.validate(self.type))
        object.__setattr__(self, "amount", coerce_decimal(self.amount))
        if self.amount < ZERO:
            raise ValueError("Transaction amount must not be negative.")
        if self.destination_amount is not None:
            object.__setattr__(
                self, "destination_amount", coerce_decimal(self.destination_amount)
            )
            if self.destination_amount < ZERO:
                raise ValueError("Destination amount must not be negative.")
        if self.is_transfer and not self.destination_account_id:
            raise ValueError("Transfers require a destination account.")

    @property
    def is_transfer(self) -> bool:
        return self.type == TransactionType.TRANSFER

    @property
    def is_self_transfer(self) -> bool:
        return self.is_transfer and self.source_account_id == self.destination_account_id

    def account_ids(self) -> tuple[str, ...]:
        if self.is_transfer:
            return (self.source_account_id, self.destination_account_id)
        return (self.source_account_id,)


@dataclass(frozen=True)
class PortfolioItem:
    id: str
    symbol: str
    name: str
    quantity: Decimal
    cost_basis: Decimal
    current_price: Decimal
    currency: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", coerce_decimal(self.quantity))
        object.__setattr__(self, "cost_basis", coerce_decimal(self.cost_basis))
        object.__setattr__(self, "current_price", coerce_decimal(self.current_price))
        object.__setattr__(self, "currency", validate_currency(self.currency))

    @property
    def market_value(self) -> Decimal:
        return self.quantity * self.current_price


def coerce_decimal(value: Decimal | float | int | str) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))
