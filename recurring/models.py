from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, List, Literal

from dateutil.relativedelta import relativedelta


PaymentMode = Literal["cash", "bank", "upi", "card"]
DueStatus = Literal["pending", "paid"]


class RecurrenceFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def step(self) -> relativedelta:
        """One occurrence's worth of calendar distance.

        relativedelta keeps the day-of-month of the date it is added to and
        clamps it to the end of the target month (Jan 31 + 1 month = Feb 28).
        """
        return _STEPS[self]

    @classmethod
    def parse(cls, value) -> Optional[RecurrenceFrequency]:
        """Return the frequency named exactly by value, or None for anything else."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


_STEPS = {
    RecurrenceFrequency.DAILY: relativedelta(days=1),
    RecurrenceFrequency.WEEKLY: relativedelta(days=7),
    RecurrenceFrequency.MONTHLY: relativedelta(months=1),
    RecurrenceFrequency.QUARTERLY: relativedelta(months=3),
    RecurrenceFrequency.YEARLY: relativedelta(years=1),
}


@dataclass(frozen=True)
class RecurrenceSchedule:
    start_date: date
    frequency: RecurrenceFrequency
    reminder_days_before: int = 0


@dataclass
class Expense:
    id: int
    amount: float
    category_name: str
    paid_by: PaymentMode
    date: date
    description: str = ""
    notes: str = ""
    is_recurring: bool = False
    recurring: Optional[RecurrenceSchedule] = None
    next_due_date: Optional[date] = None
    is_active: bool = True


expenses: List[Expense] = []


@dataclass
class ExpenseCategory:
    name: str
    is_default: bool = False


expense_categories: List[ExpenseCategory] = []
