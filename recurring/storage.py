import json
import logging
from datetime import date
from pathlib import Path
from typing import Optional

from recurring import config
from recurring.logic import build_schedule, normalize_date
from recurring.models import (
    Expense, ExpenseCategory, RecurrenceFrequency, RecurrenceSchedule, expenses, expense_categories
)


logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


class EnhancedJSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, date):
            return obj.isoformat()
        if isinstance(obj, RecurrenceFrequency):
            return obj.value
        if isinstance(obj, RecurrenceSchedule):
            return {
                "frequency": obj.frequency.value,
                "start_date": obj.start_date.isoformat(),
                "reminder_days_before": obj.reminder_days_before,
            }
        return super().default(obj)


def _saves_dir() -> Path:
    saves = Path(config.SAVES_DIR)
    saves.mkdir(parents=True, exist_ok=True)
    return saves


def list_save_files():
    return sorted(f.stem for f in _saves_dir().glob("*.json"))


def _expense_to_dict(e: Expense) -> dict:
    return {
        "id": e.id,
        "amount": e.amount,
        "category_name": e.category_name,
        "paid_by": e.paid_by,
        "date": e.date,
        "description": e.description,
        "notes": e.notes,
        "is_recurring": e.is_recurring,
        "recurring": e.recurring,
        "next_due_date": e.next_due_date,
        "is_active": e.is_active,
    }


def _expense_from_dict(data) -> Expense:
    if not isinstance(data, dict):
        raise ValueError(f"expected an object, got {type(data).__name__}")
    d = normalize_date(data["date"])
    if d is None:
        raise ValueError(f"invalid date {data['date']!r}")

    schedule: Optional[RecurrenceSchedule] = None
    raw = data.get("recurring")
    if raw:
        if not isinstance(raw, dict):
            raise ValueError(f"invalid recurring value {raw!r}")
        schedule = build_schedule(raw.get("frequency"), raw.get("start_date"),
                                  raw.get("reminder_days_before", 0))

    return Expense(
        id=int(data["id"]),
        amount=float(data["amount"]),
        category_name=str(data["category_name"]),
        paid_by=data["paid_by"],
        date=d,
        description=data.get("description", ""),
        notes=data.get("notes", ""),
        is_recurring=bool(data.get("is_recurring")) and schedule is not None,
        recurring=schedule,
        next_due_date=normalize_date(data.get("next_due_date")),
        is_active=data.get("is_active", True),
    )


def save_data(save_name="default") -> bool:
    data = {
        "metadata": {
            "version": FORMAT_VERSION,
            "created": date.today().isoformat(),
            "expense_counter": len(expenses)
        },
        "categories": [
            {
                "name": cat.name,
                "is_default": cat.is_default,
            } for cat in expense_categories
        ],
        "expenses": [_expense_to_dict(e) for e in expenses],
    }

    try:
        json_str = json.dumps(data, cls=EnhancedJSONEncoder, indent=2)
        save_path = _saves_dir() / f"{save_name}.json"
        save_path.write_text(json_str)
        logger.info("Saved %d expenses to '%s'", len(expenses), save_name)
        return True
    except (OSError, TypeError, ValueError) as e:
        logger.error("Error saving data: %s", e)
        return False


def load_data(save_name="default") -> bool:
    try:
        filepath = _saves_dir() / f"{save_name}.json"
        if not filepath.exists():
            logger.warning("Save file '%s' not found", save_name)
            return False

        data = json.loads(filepath.read_text())
        if not isinstance(data, dict):
            raise ValueError("save file does not hold an object")

        categories = []
        seen = set()
        for cat_data in data.get("categories", []):
            name = cat_data.get("name") if isinstance(cat_data, dict) else None
            if not isinstance(name, str) or not name.strip() or name.lower() in seen:
                logger.warning("Skipping invalid category %r", cat_data)
                continue
            seen.add(name.lower())
            categories.append(ExpenseCategory(name.strip(), bool(cat_data.get("is_default", False))))

        loaded = []
        for e_data in data.get("expenses", []):
            try:
                loaded.append(_expense_from_dict(e_data))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping invalid expense %s: %s",
                               e_data.get("id") if isinstance(e_data, dict) else None, e)

        # Expenses keep a category the save file forgot to list
        for e in loaded:
            if e.category_name.lower() not in seen:
                seen.add(e.category_name.lower())
                categories.append(ExpenseCategory(e.category_name))

        expense_categories[:] = categories
        expenses[:] = loaded
        logger.info("Loaded %d expenses from '%s'", len(expenses), save_name)
        return True

    except (OSError, ValueError, AttributeError, TypeError) as e:
        logger.error("Error loading data: %s", e)
        return False
