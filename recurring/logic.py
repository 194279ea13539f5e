import logging
from datetime import date, datetime, timedelta
from typing import Optional

from dateutil.parser import isoparse

from recurring.config import GUARD_LIMIT, LOOK_AHEAD_DAYS, UPCOMING_LIMIT, PAYMENT_MODES, DEFAULT_CATEGORIES
from recurring.models import (
    RecurrenceFrequency, RecurrenceSchedule, Expense, ExpenseCategory, expenses, expense_categories
)


logger = logging.getLogger(__name__)


# ===== CALENDAR ARITHMETIC =====

def normalize_date(value) -> Optional[date]:
    """Truncate a date, datetime or ISO-8601 string to a plain date.

    Returns None for None, empty strings and anything that does not parse.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            return isoparse(value).date()
        except (ValueError, OverflowError):
            return None
    return None


def add_frequency(d: date, frequency) -> Optional[date]:
    freq = RecurrenceFrequency.parse(frequency)
    if freq is None:
        return None
    try:
        return d + freq.step
    except (ValueError, OverflowError):
        # stepped past date.max
        return None


def project_next_due_date(start_date, frequency, today=None, guard_limit: int = GUARD_LIMIT) -> Optional[date]:
    """Return the first occurrence of the schedule on or after today.

    Occurrences are start_date and every date reached from it by repeated
    frequency steps. Returns None for an unparsable start date, an unknown
    frequency, a step that does not move forward, or when today is not
    reached within guard_limit steps.
    """
    start = normalize_date(start_date)
    if start is None:
        return None
    freq = RecurrenceFrequency.parse(frequency)
    if freq is None:
        return None
    today = date.today() if today is None else normalize_date(today)
    if today is None:
        return None

    if start >= today:
        return start

    cursor = start
    for _ in range(guard_limit):
        nxt = add_frequency(cursor, freq)
        if nxt is None or nxt <= cursor:
            logger.debug("Step from %s (%s) did not advance", cursor, freq.value)
            return None
        cursor = nxt
        if cursor >= today:
            return cursor

    logger.warning("Gave up projecting %s schedule from %s after %d steps",
                   freq.value, start, guard_limit)
    return None


def format_due_date(value, placeholder: str = "-") -> str:
    d = normalize_date(value)
    if d is None:
        return placeholder
    return d.strftime("%d %b %Y")


# ===== CATEGORIES =====

def find_category(name: str) -> Optional[ExpenseCategory]:
    if not name:
        return None
    key = name.strip().lower()
    for cat in expense_categories:
        if cat.name.lower() == key:
            return cat
    return None


def add_category(name: str, is_default: bool = False) -> ExpenseCategory:
    name = (name or "").strip()
    if not name:
        raise ValueError("Category name required")
    if find_category(name) is not None:
        raise ValueError("Category already exists")
    cat = ExpenseCategory(name, is_default)
    expense_categories.append(cat)
    return cat


def delete_category(name: str) -> bool:
    cat = find_category(name)
    if cat is None:
        return False
    if any(e.category_name == cat.name for e in active_expenses()):
        raise ValueError("Category is in use by expenses and cannot be removed")
    expense_categories[:] = [c for c in expense_categories if c is not cat]
    return True


def ensure_default_categories() -> int:
    """Seed the default categories into an empty category list."""
    if expense_categories:
        return 0
    for name in DEFAULT_CATEGORIES:
        add_category(name, is_default=True)
    return len(DEFAULT_CATEGORIES)


def list_categories() -> list[ExpenseCategory]:
    return sorted(expense_categories, key=lambda c: c.name.lower())


# ===== EXPENSE BOOK =====

def _parse_reminder_days(value) -> int:
    try:
        days = int(value or 0)
    except (TypeError, ValueError):
        days = 0
    return max(0, days)


def _parse_amount(value) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValueError("Invalid amount")
    if amount < 0:
        raise ValueError("Amount must be non-negative")
    return amount


def _parse_paid_by(value) -> str:
    paid_by = str(value or "").lower()
    if paid_by not in PAYMENT_MODES:
        raise ValueError("Invalid payment mode")
    return paid_by


def _parse_expense_date(value) -> date:
    d = normalize_date(value)
    if d is None:
        raise ValueError("Invalid date")
    return d


def _resolve_category(name) -> str:
    if not name or not str(name).strip():
        raise ValueError("Category is required")
    cat = find_category(str(name))
    if cat is None:
        raise ValueError("Category not found")
    return cat.name


def build_schedule(frequency, start_date, reminder_days_before=0) -> RecurrenceSchedule:
    if isinstance(frequency, str):
        frequency = frequency.strip().lower()
    freq = RecurrenceFrequency.parse(frequency)
    if freq is None:
        raise ValueError("Invalid recurring frequency")
    start = normalize_date(start_date)
    if start is None:
        raise ValueError("Recurring start date required")
    return RecurrenceSchedule(
        start_date=start,
        frequency=freq,
        reminder_days_before=_parse_reminder_days(reminder_days_before),
    )


def _next_id() -> int:
    return max((e.id for e in expenses), default=0) + 1


def find_expense(expense_id: int) -> Optional[Expense]:
    for e in expenses:
        if e.id == expense_id:
            return e
    return None


def _get_expense(expense_id: int) -> Expense:
    expense = find_expense(expense_id)
    if expense is None or not expense.is_active:
        raise KeyError(f"Expense {expense_id} not found")
    return expense


def add_expense(
        amount: float,
        category_name: str,
        paid_by: str,
        expense_date,
        description: str = "",
        notes: str = "",
        is_recurring: bool = False,
        frequency=None,
        start_date=None,
        reminder_days_before=0,
        today=None,
) -> Expense:
    amount = _parse_amount(amount)
    paid_by = _parse_paid_by(paid_by)
    category_name = _resolve_category(category_name)
    d = _parse_expense_date(expense_date)

    schedule = None
    next_due = None
    if is_recurring:
        schedule = build_schedule(frequency, start_date, reminder_days_before)
        next_due = project_next_due_date(schedule.start_date, schedule.frequency, today)

    expense = Expense(
        id=_next_id(),
        amount=amount,
        category_name=category_name,
        paid_by=paid_by,
        date=d,
        description=description or "",
        notes=notes or "",
        is_recurring=is_recurring,
        recurring=schedule,
        next_due_date=next_due,
    )
    expenses.append(expense)
    logger.debug("Added expense %d (next due %s)", expense.id, next_due)
    return expense


def update_expense(
        expense_id: int,
        amount=None,
        expense_date=None,
        category_name: Optional[str] = None,
        paid_by: Optional[str] = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
) -> Expense:
    """Edit the ordinary fields of an expense; None leaves a field unchanged.

    Everything is validated before anything is written.
    """
    expense = _get_expense(expense_id)
    changes = {}
    if amount is not None:
        changes["amount"] = _parse_amount(amount)
    if expense_date is not None:
        changes["date"] = _parse_expense_date(expense_date)
    if category_name is not None:
        changes["category_name"] = _resolve_category(category_name)
    if paid_by is not None:
        changes["paid_by"] = _parse_paid_by(paid_by)
    if description is not None:
        changes["description"] = description
    if notes is not None:
        changes["notes"] = notes

    for field_name, value in changes.items():
        setattr(expense, field_name, value)
    logger.debug("Updated expense %d: %s", expense.id, ", ".join(changes) or "nothing")
    return expense


def update_recurrence(
        expense_id: int,
        is_recurring: Optional[bool] = None,
        frequency=None,
        start_date=None,
        reminder_days_before=None,
        today=None,
) -> Expense:
    """Change an expense's recurrence; omitted fields keep their current values."""
    expense = _get_expense(expense_id)
    if is_recurring is None:
        is_recurring = expense.is_recurring

    if not is_recurring:
        expense.is_recurring = False
        expense.recurring = None
        expense.next_due_date = None
        return expense

    current = expense.recurring
    schedule = build_schedule(
        frequency if frequency else (current.frequency if current else None),
        start_date if start_date else (current.start_date if current else None),
        reminder_days_before if reminder_days_before is not None
        else (current.reminder_days_before if current else 0),
    )
    expense.is_recurring = True
    expense.recurring = schedule
    expense.next_due_date = project_next_due_date(schedule.start_date, schedule.frequency, today)
    return expense


def end_recurrence(expense_id: int) -> Expense:
    return update_recurrence(expense_id, is_recurring=False)


def delete_expense(expense_id: int) -> bool:
    expense = find_expense(expense_id)
    if expense is None or not expense.is_active:
        return False
    expense.is_active = False
    return True


def active_expenses() -> list[Expense]:
    return [e for e in expenses if e.is_active]


def filter_expenses(
        date_range: Optional[tuple[date, date]] = None,
        category_name: Optional[str] = None,
        paid_by: Optional[str] = None,
        is_recurring: Optional[bool] = None,
        query: Optional[str] = None,
) -> list[Expense]:
    """Active expenses matching every given criterion, newest first."""
    category_key = category_name.strip().lower() if category_name else None
    paid_by = paid_by.lower() if paid_by else None
    query = query.lower() if query else None

    result = []
    for e in active_expenses():
        if date_range is not None and not (date_range[0] <= e.date <= date_range[1]):
            continue
        if category_key is not None and e.category_name.lower() != category_key:
            continue
        if paid_by is not None and e.paid_by != paid_by:
            continue
        if is_recurring is not None and e.is_recurring != is_recurring:
            continue
        if query is not None and not any(
                query in text.lower() for text in (e.description, e.notes, e.category_name)):
            continue
        result.append(e)

    result.sort(key=lambda e: (e.date, e.id), reverse=True)
    return result


def refresh_due_dates(today=None) -> int:
    changed = 0
    for e in active_expenses():
        if not (e.is_recurring and e.recurring):
            continue
        next_due = project_next_due_date(e.recurring.start_date, e.recurring.frequency, today)
        if next_due != e.next_due_date:
            e.next_due_date = next_due
            changed += 1
    logger.info("Refreshed due dates, %d changed", changed)
    return changed


# ===== UPCOMING =====

def upcoming_recurring(today=None, look_ahead_days: int = LOOK_AHEAD_DAYS, limit: Optional[int] = UPCOMING_LIMIT) -> list[dict]:
    """Recurring expenses due within the window, soonest first.

    Ties on the due date list the most recently paid expense first. An item
    is "pending" when it falls due today and "paid" otherwise.
    """
    today = date.today() if today is None else normalize_date(today)
    if today is None:
        return []
    horizon = today + timedelta(days=look_ahead_days)

    items = []
    for e in active_expenses():
        if not (e.is_recurring and e.recurring):
            continue
        next_due = project_next_due_date(e.recurring.start_date, e.recurring.frequency, today)
        if next_due is None or next_due > horizon:
            continue
        items.append({
            "id": e.id,
            "category": e.category_name,
            "frequency": e.recurring.frequency.value,
            "amount": e.amount,
            "next_due_date": next_due,
            "last_paid_on": e.date,
            "reminder_date": next_due - timedelta(days=e.recurring.reminder_days_before),
            "status": "pending" if next_due <= today else "paid",
        })

    items.sort(key=lambda x: (x["next_due_date"], -x["last_paid_on"].toordinal(), x["id"]))
    return items if limit is None else items[:limit]


def reminders_due(today=None) -> list[dict]:
    today = date.today() if today is None else normalize_date(today)
    if today is None:
        return []
    window = max(
        [LOOK_AHEAD_DAYS] +
        [e.recurring.reminder_days_before for e in active_expenses() if e.is_recurring and e.recurring]
    )
    return [
        item for item in upcoming_recurring(today, look_ahead_days=window, limit=None)
        if item["reminder_date"] <= today
    ]
