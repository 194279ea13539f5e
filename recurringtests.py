import unittest
import io
import json
import os
import runpy
import tempfile
from contextlib import redirect_stdout
from dataclasses import FrozenInstanceError
from datetime import date, datetime
from pathlib import Path
from unittest.mock import patch

from recurring import config
from recurring.models import RecurrenceFrequency, RecurrenceSchedule, expenses, expense_categories
from recurring.logic import (
    normalize_date, add_frequency, project_next_due_date, format_due_date,
    add_category, delete_category, ensure_default_categories, list_categories, find_category,
    add_expense, update_expense, update_recurrence, end_recurrence, delete_expense, find_expense,
    active_expenses, filter_expenses, refresh_due_dates, upcoming_recurring, reminders_due
)
from recurring.storage import save_data, load_data, list_save_files
from recurring.cli import ExpenseRecurrenceCLI
from recurring.main import main


def reset_book(*category_names):
    """Clear global state and register the given categories"""
    expenses.clear()
    expense_categories.clear()
    for name in category_names:
        add_category(name)


class TestFrequency(unittest.TestCase):
    def test_parse_known_values(self):
        """Test parsing each frequency name"""
        self.assertEqual(RecurrenceFrequency.parse("daily"), RecurrenceFrequency.DAILY)
        self.assertEqual(RecurrenceFrequency.parse("quarterly"), RecurrenceFrequency.QUARTERLY)
        self.assertEqual(RecurrenceFrequency.parse(RecurrenceFrequency.YEARLY), RecurrenceFrequency.YEARLY)

    def test_parse_unknown_values(self):
        """Only exact frequency names parse"""
        for value in ("biannual", "", None, 7, "month", "MONTHLY", " quarterly "):
            self.assertIsNone(RecurrenceFrequency.parse(value))

    def test_single_steps(self):
        """Test one step of each frequency"""
        start = date(2023, 1, 31)
        self.assertEqual(add_frequency(start, "daily"), date(2023, 2, 1))
        self.assertEqual(add_frequency(start, "weekly"), date(2023, 2, 7))
        self.assertEqual(add_frequency(start, "monthly"), date(2023, 2, 28))
        self.assertEqual(add_frequency(start, "quarterly"), date(2023, 4, 30))
        self.assertEqual(add_frequency(start, "yearly"), date(2024, 1, 31))
        self.assertIsNone(add_frequency(start, "fortnightly"))

    def test_step_past_max_date(self):
        self.assertIsNone(add_frequency(date(9999, 12, 31), "daily"))
        self.assertIsNone(add_frequency(date(9999, 12, 31), "yearly"))


class TestNormalizeDate(unittest.TestCase):
    def test_inputs(self):
        """Test the accepted date inputs"""
        self.assertEqual(normalize_date(date(2023, 1, 31)), date(2023, 1, 31))
        self.assertEqual(normalize_date(datetime(2023, 1, 31, 18, 45)), date(2023, 1, 31))
        self.assertEqual(normalize_date("2023-01-31"), date(2023, 1, 31))
        self.assertEqual(normalize_date("2023-01-31T23:10:00Z"), date(2023, 1, 31))

    def test_unparsable(self):
        for value in (None, "", "   ", "not-a-date", "2023-02-30", 20230131):
            self.assertIsNone(normalize_date(value))


class TestConfig(unittest.TestCase):
    def test_env_int(self):
        """Malformed numeric settings fall back to the default"""
        with patch.dict(os.environ, {"RECURRING_GUARD_LIMIT": "lots"}):
            self.assertEqual(config._env_int("RECURRING_GUARD_LIMIT", 500), 500)
        with patch.dict(os.environ, {"RECURRING_GUARD_LIMIT": "750"}):
            self.assertEqual(config._env_int("RECURRING_GUARD_LIMIT", 500), 750)
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(config._env_int("RECURRING_LOOK_AHEAD_DAYS", 30), 30)


class TestProjectNextDueDate(unittest.TestCase):
    def test_start_on_or_after_today(self):
        """A schedule that has not started yet is due on its start date"""
        today = date(2023, 5, 10)
        for freq in RecurrenceFrequency:
            self.assertEqual(project_next_due_date(today, freq, today), today)
            self.assertEqual(project_next_due_date(date(2023, 6, 1), freq, today), date(2023, 6, 1))

    def test_month_end_clamping(self):
        self.assertEqual(
            project_next_due_date("2023-01-31", "monthly", date(2023, 2, 15)),
            date(2023, 2, 28)
        )

    def test_leap_year_february(self):
        self.assertEqual(
            project_next_due_date("2024-01-31", "monthly", date(2024, 2, 15)),
            date(2024, 2, 29)
        )

    def test_quarterly(self):
        """Quarterly steps clamp Apr 31 to Apr 30 and keep walking until today"""
        self.assertEqual(
            project_next_due_date("2023-01-31", "quarterly", date(2023, 4, 15)),
            date(2023, 4, 30)
        )
        self.assertEqual(
            project_next_due_date("2023-01-31", "quarterly", date(2023, 6, 1)),
            date(2023, 7, 30)
        )

    def test_weekly(self):
        self.assertEqual(
            project_next_due_date("2023-03-01", "weekly", date(2023, 3, 10)),
            date(2023, 3, 15)
        )

    def test_daily_across_year_end(self):
        self.assertEqual(
            project_next_due_date(date(2023, 12, 30), "daily", date(2024, 1, 2)),
            date(2024, 1, 2)
        )

    def test_monthly_steps_from_cursor_day(self):
        """Each month step uses the day of the date being advanced"""
        # Jan 31 -> Feb 28 -> Mar 28 -> Apr 28
        self.assertEqual(
            project_next_due_date("2023-01-31", "monthly", date(2023, 3, 29)),
            date(2023, 4, 28)
        )

    def test_yearly_from_leap_day(self):
        """Feb 29 clamps to Feb 28 in non-leap years"""
        self.assertEqual(
            project_next_due_date("2024-02-29", "yearly", date(2025, 1, 1)),
            date(2025, 2, 28)
        )
        self.assertEqual(
            project_next_due_date("2024-02-29", "yearly", date(2028, 3, 1)),
            date(2029, 2, 28)
        )

    def test_invalid_frequency(self):
        today = date(2023, 2, 1)
        self.assertIsNone(project_next_due_date("2023-01-01", "biannual", today))
        self.assertIsNone(project_next_due_date("2023-01-01", "MONTHLY", today))
        self.assertIsNone(project_next_due_date("2023-01-01", "", today))
        self.assertIsNone(project_next_due_date("2023-01-01", None, today))

    def test_unparsable_start(self):
        today = date(2023, 2, 1)
        self.assertIsNone(project_next_due_date(None, "monthly", today))
        self.assertIsNone(project_next_due_date("", "monthly", today))
        self.assertIsNone(project_next_due_date("31/01/2023", "monthly", today))

    def test_unparsable_today(self):
        self.assertIsNone(project_next_due_date("2023-01-01", "monthly", "someday"))

    def test_time_of_day_is_ignored(self):
        self.assertEqual(
            project_next_due_date(datetime(2023, 3, 1, 15, 30), "weekly", datetime(2023, 3, 15, 23, 59)),
            date(2023, 3, 15)
        )

    def test_defaults_to_current_date(self):
        result = project_next_due_date(date(2000, 1, 1), "yearly")
        self.assertGreaterEqual(result, date.today())

    def test_step_that_does_not_advance(self):
        """A stuck step rule returns None instead of looping"""
        with patch("recurring.logic.add_frequency", side_effect=lambda d, f: d) as stuck:
            self.assertIsNone(project_next_due_date("2023-01-01", "daily", date(2023, 2, 1)))
            self.assertEqual(stuck.call_count, 1)

    def test_guard_limit(self):
        """Schedules that need more steps than the guard allows return None"""
        self.assertIsNone(project_next_due_date(date(2020, 1, 1), "daily", date(2023, 1, 1)))
        self.assertEqual(
            project_next_due_date(date(2020, 1, 1), "daily", date(2023, 1, 1), guard_limit=2000),
            date(2023, 1, 1)
        )

    def test_result_is_reachable_and_not_before_today(self):
        starts = [date(2023, 1, 31), date(2023, 2, 28), date(2024, 2, 29), date(2023, 8, 15)]
        today = date(2024, 11, 5)
        for freq in RecurrenceFrequency:
            for start in starts:
                result = project_next_due_date(start, freq, today)
                if result is None:
                    continue
                self.assertGreaterEqual(result, today)
                cursor = start
                while cursor < result:
                    cursor = add_frequency(cursor, freq)
                self.assertEqual(cursor, result, f"{freq.value} from {start}")

    def test_format_due_date(self):
        self.assertEqual(format_due_date(date(2023, 1, 31)), "31 Jan 2023")
        self.assertEqual(format_due_date("2024-02-29"), "29 Feb 2024")
        self.assertEqual(format_due_date(None), "-")
        self.assertEqual(format_due_date(None, placeholder="Not set"), "Not set")


class TestCategories(unittest.TestCase):
    def setUp(self):
        reset_book()

    def test_default_categories(self):
        """Defaults are seeded only into an empty list"""
        self.assertEqual(ensure_default_categories(), 7)
        self.assertEqual(ensure_default_categories(), 0)
        self.assertEqual(
            [c.name for c in list_categories()],
            ["Birthday Celebrations", "Festival Gifts", "Housekeeping", "Misc",
             "Stationery", "Tea/Coffee", "Travel"]
        )
        self.assertTrue(all(c.is_default for c in expense_categories))

    def test_add_category(self):
        cat = add_category("  Rent ")
        self.assertEqual(cat.name, "Rent")
        self.assertFalse(cat.is_default)
        self.assertIs(find_category("RENT"), cat)

        with self.assertRaises(ValueError):
            add_category("rent")
        with self.assertRaises(ValueError):
            add_category("   ")
        self.assertEqual(len(expense_categories), 1)

    def test_delete_category(self):
        add_category("Rent")
        add_category("Tea")
        expense = add_expense(900, "Rent", "bank", "2023-03-01")

        with self.assertRaises(ValueError):
            delete_category("Rent")
        self.assertTrue(delete_category("tea"))
        self.assertFalse(delete_category("Tea"))
        self.assertFalse(delete_category("Nope"))

        delete_expense(expense.id)
        self.assertTrue(delete_category("Rent"))
        self.assertEqual(expense_categories, [])

    def test_expense_uses_registered_name(self):
        add_category("Rent")
        expense = add_expense(900, "rent", "bank", "2023-03-01")
        self.assertEqual(expense.category_name, "Rent")


class TestExpenseBook(unittest.TestCase):
    def setUp(self):
        """Reset global state before each test"""
        reset_book("Stationery", "Rent", "Internet", "Tea", "A", "B")

    def test_add_plain_expense(self):
        expense = add_expense(120.0, "Stationery", "cash", "2023-03-02")
        self.assertEqual(expense.id, 1)
        self.assertEqual(expense.date, date(2023, 3, 2))
        self.assertFalse(expense.is_recurring)
        self.assertIsNone(expense.recurring)
        self.assertIsNone(expense.next_due_date)
        self.assertEqual(len(expenses), 1)

    def test_add_recurring_expense(self):
        expense = add_expense(
            1500.0, "Rent", "Bank", date(2023, 1, 31),
            is_recurring=True, frequency="monthly", start_date="2023-01-31",
            reminder_days_before=3, today=date(2023, 2, 15)
        )
        self.assertEqual(expense.paid_by, "bank")
        self.assertEqual(expense.recurring, RecurrenceSchedule(date(2023, 1, 31), RecurrenceFrequency.MONTHLY, 3))
        self.assertEqual(expense.next_due_date, date(2023, 2, 28))

        with self.assertRaises(FrozenInstanceError):
            expense.recurring.start_date = date(2023, 2, 1)

    def test_frequency_input_is_lowercased(self):
        """Form input is normalized before the frequency lookup"""
        expense = add_expense(10, "Rent", "bank", "2023-01-31", is_recurring=True,
                              frequency=" Monthly ", start_date="2023-01-31", today=date(2023, 2, 15))
        self.assertEqual(expense.recurring.frequency, RecurrenceFrequency.MONTHLY)
        self.assertEqual(expense.next_due_date, date(2023, 2, 28))

    def test_ids_increment(self):
        first = add_expense(1, "A", "cash", "2023-01-01")
        second = add_expense(2, "B", "cash", "2023-01-02")
        self.assertEqual((first.id, second.id), (1, 2))

    def test_validation(self):
        """Invalid expense data raises ValueError"""
        with self.assertRaises(ValueError):
            add_expense(-1, "Rent", "bank", "2023-01-01")
        with self.assertRaises(ValueError):
            add_expense("abc", "Rent", "bank", "2023-01-01")
        with self.assertRaises(ValueError):
            add_expense(10, "Rent", "cheque", "2023-01-01")
        with self.assertRaises(ValueError):
            add_expense(10, "  ", "bank", "2023-01-01")
        with self.assertRaises(ValueError):
            add_expense(10, "Groceries", "bank", "2023-01-01")
        with self.assertRaises(ValueError):
            add_expense(10, "Rent", "bank", "yesterday")
        with self.assertRaises(ValueError):
            add_expense(10, "Rent", "bank", "2023-01-01", is_recurring=True,
                        frequency="biannual", start_date="2023-01-01")
        with self.assertRaises(ValueError):
            add_expense(10, "Rent", "bank", "2023-01-01", is_recurring=True, frequency="monthly")
        self.assertEqual(len(expenses), 0)

    def test_reminder_days_floor(self):
        negative = add_expense(10, "Rent", "bank", "2023-01-01", is_recurring=True, frequency="monthly",
                               start_date="2023-01-01", reminder_days_before=-3)
        text = add_expense(10, "Rent", "bank", "2023-01-01", is_recurring=True, frequency="monthly",
                           start_date="2023-01-01", reminder_days_before="5")
        self.assertEqual(negative.recurring.reminder_days_before, 0)
        self.assertEqual(text.recurring.reminder_days_before, 5)

    def test_update_expense_fields(self):
        expense = add_expense(10, "Tea", "cash", "2023-03-01", is_recurring=True,
                              frequency="weekly", start_date="2023-03-01")
        schedule = expense.recurring

        update_expense(expense.id, amount="12.5", expense_date="2023-03-02", category_name="rent",
                       paid_by="UPI", description="Milk and tea", notes="office")

        self.assertEqual(expense.amount, 12.5)
        self.assertEqual(expense.date, date(2023, 3, 2))
        self.assertEqual(expense.category_name, "Rent")
        self.assertEqual(expense.paid_by, "upi")
        self.assertEqual(expense.description, "Milk and tea")
        self.assertEqual(expense.notes, "office")
        self.assertIs(expense.recurring, schedule)

    def test_update_expense_is_all_or_nothing(self):
        expense = add_expense(10, "Tea", "cash", "2023-03-01")
        with self.assertRaises(ValueError):
            update_expense(expense.id, amount=20, category_name="Groceries")
        with self.assertRaises(ValueError):
            update_expense(expense.id, amount=-5)
        with self.assertRaises(ValueError):
            update_expense(expense.id, paid_by="cheque")
        self.assertEqual(expense.amount, 10)
        self.assertEqual(expense.category_name, "Tea")

        with self.assertRaises(KeyError):
            update_expense(99, amount=1)

    def test_update_recurrence_keeps_omitted_fields(self):
        expense = add_expense(50, "Internet", "upi", "2023-03-01", is_recurring=True,
                              frequency="monthly", start_date="2023-03-01", reminder_days_before=2)
        old_schedule = expense.recurring

        update_recurrence(expense.id, frequency="weekly", today=date(2023, 3, 10))

        self.assertEqual(expense.recurring.frequency, RecurrenceFrequency.WEEKLY)
        self.assertEqual(expense.recurring.start_date, date(2023, 3, 1))
        self.assertEqual(expense.recurring.reminder_days_before, 2)
        self.assertEqual(expense.next_due_date, date(2023, 3, 15))
        # the previous schedule value is untouched
        self.assertEqual(old_schedule.frequency, RecurrenceFrequency.MONTHLY)

    def test_update_makes_expense_recurring(self):
        expense = add_expense(50, "Internet", "upi", "2023-03-01")
        with self.assertRaises(ValueError):
            update_recurrence(expense.id, is_recurring=True, frequency="monthly")

        update_recurrence(expense.id, is_recurring=True, frequency="quarterly",
                          start_date="2023-01-31", today=date(2023, 4, 15))
        self.assertTrue(expense.is_recurring)
        self.assertEqual(expense.next_due_date, date(2023, 4, 30))

    def test_end_recurrence(self):
        expense = add_expense(50, "Internet", "upi", "2023-03-01", is_recurring=True,
                              frequency="monthly", start_date="2023-03-01")
        end_recurrence(expense.id)
        self.assertFalse(expense.is_recurring)
        self.assertIsNone(expense.recurring)
        self.assertIsNone(expense.next_due_date)

    def test_unknown_expense(self):
        with self.assertRaises(KeyError):
            update_recurrence(99, frequency="daily")

        expense = add_expense(5, "Tea", "cash", "2023-03-01")
        delete_expense(expense.id)
        with self.assertRaises(KeyError):
            end_recurrence(expense.id)

    def test_delete_expense(self):
        keep = add_expense(5, "Tea", "cash", "2023-03-01")
        drop = add_expense(6, "Tea", "cash", "2023-03-01")

        self.assertTrue(delete_expense(drop.id))
        self.assertFalse(delete_expense(drop.id))
        self.assertFalse(delete_expense(42))

        self.assertEqual(active_expenses(), [keep])
        self.assertIs(find_expense(drop.id), drop)
        self.assertFalse(drop.is_active)

    def test_refresh_due_dates(self):
        expense = add_expense(1500.0, "Rent", "bank", "2023-01-31", is_recurring=True,
                              frequency="monthly", start_date="2023-01-31", today=date(2023, 2, 15))
        add_expense(5, "Tea", "cash", "2023-03-01")

        self.assertEqual(refresh_due_dates(today=date(2023, 3, 1)), 1)
        self.assertEqual(expense.next_due_date, date(2023, 3, 28))
        self.assertEqual(refresh_due_dates(today=date(2023, 3, 1)), 0)


class TestFilterExpenses(unittest.TestCase):
    def setUp(self):
        reset_book("Rent", "Tea", "Travel")
        self.rent = add_expense(1500, "Rent", "bank", "2023-01-31", description="Office rent",
                                is_recurring=True, frequency="monthly", start_date="2023-01-31")
        self.tea = add_expense(12, "Tea", "cash", "2023-02-10", notes="team meeting")
        self.travel = add_expense(300, "Travel", "card", "2023-03-05", description="Client visit")
        gone = add_expense(40, "Tea", "cash", "2023-02-11")
        delete_expense(gone.id)

    def test_no_filters_newest_first(self):
        self.assertEqual(filter_expenses(), [self.travel, self.tea, self.rent])

    def test_single_criteria(self):
        self.assertEqual(filter_expenses(date_range=(date(2023, 2, 1), date(2023, 3, 31))),
                         [self.travel, self.tea])
        self.assertEqual(filter_expenses(category_name="rent"), [self.rent])
        self.assertEqual(filter_expenses(paid_by="CASH"), [self.tea])
        self.assertEqual(filter_expenses(is_recurring=True), [self.rent])
        self.assertEqual(filter_expenses(is_recurring=False), [self.travel, self.tea])

    def test_text_search(self):
        """Search matches description, notes and category name"""
        self.assertEqual(filter_expenses(query="MEETING"), [self.tea])
        self.assertEqual(filter_expenses(query="client"), [self.travel])
        self.assertEqual(filter_expenses(query="tea"), [self.tea])
        self.assertEqual(filter_expenses(query="nothing"), [])

    def test_combined_criteria(self):
        self.assertEqual(
            filter_expenses(date_range=(date(2023, 2, 1), date.max), is_recurring=False, paid_by="card"),
            [self.travel]
        )


class TestUpcoming(unittest.TestCase):
    def setUp(self):
        reset_book("Cleaning", "Rent", "Insurance", "Lunch", "Paper", "Phone", "Audit")
        self.today = date(2023, 3, 10)
        self.weekly = add_expense(20, "Cleaning", "cash", "2023-03-01", is_recurring=True,
                                  frequency="weekly", start_date="2023-03-01", reminder_days_before=3)
        self.monthly = add_expense(900, "Rent", "bank", "2023-01-10", is_recurring=True,
                                   frequency="monthly", start_date="2023-01-10")
        self.yearly = add_expense(300, "Insurance", "card", "2022-06-01", is_recurring=True,
                                  frequency="yearly", start_date="2022-06-01")
        add_expense(15, "Lunch", "cash", "2023-03-09")
        deleted = add_expense(1, "Paper", "cash", "2023-03-01", is_recurring=True,
                              frequency="daily", start_date="2023-03-01")
        delete_expense(deleted.id)

    def test_window_and_order(self):
        items = upcoming_recurring(today=self.today)
        self.assertEqual([i["id"] for i in items], [self.monthly.id, self.weekly.id])

        rent, cleaning = items
        self.assertEqual(rent["next_due_date"], date(2023, 3, 10))
        self.assertEqual(rent["status"], "pending")
        self.assertEqual(rent["last_paid_on"], date(2023, 1, 10))
        self.assertEqual(cleaning["next_due_date"], date(2023, 3, 15))
        self.assertEqual(cleaning["status"], "paid")
        self.assertEqual(cleaning["reminder_date"], date(2023, 3, 12))
        self.assertEqual(cleaning["frequency"], "weekly")
        self.assertEqual(cleaning["category"], "Cleaning")

    def test_same_due_date_lists_latest_payment_first(self):
        older = add_expense(50, "Phone", "upi", "2023-02-10", is_recurring=True,
                            frequency="monthly", start_date="2023-01-10")
        newer = add_expense(60, "Phone", "upi", "2023-03-01", is_recurring=True,
                            frequency="monthly", start_date="2023-01-10")

        items = upcoming_recurring(today=self.today)
        self.assertEqual([i["id"] for i in items],
                         [newer.id, older.id, self.monthly.id, self.weekly.id])

    def test_longer_window_and_limit(self):
        items = upcoming_recurring(today=self.today, look_ahead_days=90)
        self.assertEqual([i["id"] for i in items], [self.monthly.id, self.weekly.id, self.yearly.id])
        self.assertEqual(items[-1]["next_due_date"], date(2023, 6, 1))

        self.assertEqual(len(upcoming_recurring(today=self.today, limit=1)), 1)

    def test_reminders_due(self):
        early = add_expense(40, "Phone", "upi", "2023-01-20", is_recurring=True,
                            frequency="monthly", start_date="2023-01-20", reminder_days_before=15)
        far = add_expense(500, "Audit", "bank", "2022-05-01", is_recurring=True,
                          frequency="yearly", start_date="2022-05-01", reminder_days_before=60)

        items = reminders_due(today=self.today)
        self.assertEqual([i["id"] for i in items], [self.monthly.id, early.id, far.id])
        self.assertEqual(items[2]["reminder_date"], date(2023, 3, 2))


class TestStorage(unittest.TestCase):
    def setUp(self):
        reset_book("Rent", "Tea")
        self._tmp = tempfile.TemporaryDirectory()
        self._saves = patch("recurring.config.SAVES_DIR", Path(self._tmp.name))
        self._saves.start()

    def tearDown(self):
        self._saves.stop()
        self._tmp.cleanup()

    def write_save(self, name, data):
        (Path(self._tmp.name) / f"{name}.json").write_text(json.dumps(data))

    def test_save_and_load_data(self):
        recurring = add_expense(1500.0, "Rent", "bank", "2023-01-31", description="Office",
                                is_recurring=True, frequency="quarterly", start_date="2023-01-31",
                                reminder_days_before=4, today=date(2023, 2, 15))
        add_expense(12.5, "Tea", "cash", "2023-02-01", notes="team")

        self.assertTrue(save_data("test_save"))
        expenses.clear()
        expense_categories.clear()
        self.assertTrue(load_data("test_save"))

        self.assertEqual([c.name for c in expense_categories], ["Rent", "Tea"])
        self.assertEqual(len(expenses), 2)
        loaded = expenses[0]
        self.assertEqual(loaded.id, recurring.id)
        self.assertEqual(loaded.description, "Office")
        self.assertEqual(loaded.recurring, recurring.recurring)
        self.assertEqual(loaded.next_due_date, date(2023, 4, 30))
        self.assertEqual(expenses[1].notes, "team")
        self.assertIsNone(expenses[1].recurring)

    def test_list_save_files(self):
        save_data("test_save1")
        save_data("test_save2")
        self.assertEqual(list_save_files(), ["test_save1", "test_save2"])

    def test_missing_file(self):
        self.assertFalse(load_data("nothing_here"))

    def test_skips_invalid_records(self):
        self.write_save("test_mixed", {
            "metadata": {"version": "1.0"},
            "categories": [{"name": "Rent"}, {"name": "Tea"}],
            "expenses": [
                {"id": 1, "amount": 10, "category_name": "Rent", "paid_by": "bank", "date": "2023-01-01",
                 "is_recurring": True, "recurring": {"frequency": "biannual", "start_date": "2023-01-01"}},
                {"id": 2, "amount": 20, "category_name": "Tea", "paid_by": "cash", "date": "2023-01-02",
                 "is_recurring": True, "recurring": {"frequency": "weekly", "start_date": "2023-01-02"},
                 "next_due_date": "2023-01-09"},
                {"id": 3, "category_name": "Broken"},
            ],
        })

        self.assertTrue(load_data("test_mixed"))
        self.assertEqual([e.id for e in expenses], [2])
        self.assertEqual(expenses[0].recurring.frequency, RecurrenceFrequency.WEEKLY)
        self.assertEqual(expenses[0].next_due_date, date(2023, 1, 9))

    def test_skips_records_with_wrong_shape(self):
        """Records and schedules that are not objects are skipped, not fatal"""
        self.write_save("test_shapes", {
            "expenses": [
                {"id": 1, "amount": 10, "category_name": "Rent", "paid_by": "bank", "date": "2023-01-01",
                 "is_recurring": True, "recurring": "monthly"},
                {"id": 2, "amount": 20, "category_name": "Tea", "paid_by": "cash", "date": "2023-01-02"},
                {"id": 3, "amount": 30, "category_name": "Rent", "paid_by": "bank", "date": "2023-01-03",
                 "is_recurring": True, "recurring": ["monthly", "2023-01-03"]},
                "not an expense",
                [4, 5],
            ],
        })

        self.assertTrue(load_data("test_shapes"))
        self.assertEqual([e.id for e in expenses], [2])
        # categories missing from the file come from the expenses that use them
        self.assertEqual([c.name for c in expense_categories], ["Tea"])

    def test_corrupt_file_keeps_current_data(self):
        add_expense(5, "Tea", "cash", "2023-03-01")
        (Path(self._tmp.name) / "test_corrupt.json").write_text("{not json")
        self.write_save("test_list", [1, 2])

        self.assertFalse(load_data("test_corrupt"))
        self.assertFalse(load_data("test_list"))
        self.assertEqual(len(expenses), 1)
        self.assertEqual(len(expense_categories), 2)


class TestCLI(unittest.TestCase):
    def setUp(self):
        reset_book("Rent", "Tea")
        self._tmp = tempfile.TemporaryDirectory()
        self._saves = patch("recurring.config.SAVES_DIR", Path(self._tmp.name))
        self._saves.start()
        self.cli = ExpenseRecurrenceCLI()

    def tearDown(self):
        self._saves.stop()
        self._tmp.cleanup()

    def run_command(self, line):
        out = io.StringIO()
        self.cli.stdout = out
        with redirect_stdout(out):
            self.cli.onecmd(line)
        return out.getvalue()

    def test_due_preview(self):
        self.assertIn("Next due: 28 Feb 2023", self.run_command("due 2023-01-31 monthly 2023-02-15"))
        self.assertIn("Next due: Not set", self.run_command("due 2023-01-01 biannual 2023-02-01"))
        self.assertIn("Usage", self.run_command("due 2023-01-01"))
        self.assertIn("YYYY-MM-DD", self.run_command("due 2023-01-01 monthly later"))

    def test_add_recurring(self):
        output = self.run_command('add 12.5 bank Rent 2023-01-31 --recur Monthly --remind 2 --desc Office rent')
        self.assertIn("Added expense #1", output)

        expense = expenses[0]
        self.assertEqual(expense.date, date(2023, 1, 31))
        self.assertEqual(expense.recurring.start_date, date(2023, 1, 31))
        self.assertEqual(expense.recurring.frequency, RecurrenceFrequency.MONTHLY)
        self.assertEqual(expense.recurring.reminder_days_before, 2)
        self.assertEqual(expense.description, "Office rent")

    def test_add_invalid(self):
        self.assertIn("Invalid input", self.run_command("add 10 cheque Rent"))
        self.assertIn("Invalid input", self.run_command("add 10 bank Rent --recur biannual"))
        self.assertIn("Invalid input", self.run_command("add 10 bank Groceries"))
        self.assertIn("Invalid input", self.run_command("add 10 bank"))
        self.assertEqual(len(expenses), 0)

    def test_list(self):
        self.assertIn("No expenses", self.run_command("list"))
        add_expense(1500, "Rent", "bank", "2023-01-31", is_recurring=True,
                    frequency="monthly", start_date="2023-01-31")
        add_expense(12, "Tea", "cash", "2023-02-10", description="Biscuits")

        output = self.run_command("list")
        self.assertIn("#1 2023-01-31 Rent", output)
        self.assertIn("#2 2023-02-10 Tea", output)
        self.assertIn("monthly, next due", output)

        output = self.run_command("list --category rent")
        self.assertIn("#1", output)
        self.assertNotIn("#2", output)

        output = self.run_command("list --one-off --from 2023-02-01 --paid-by cash --search biscuits")
        self.assertIn("#2", output)
        self.assertNotIn("#1", output)

        self.assertIn("#1", self.run_command("list --recurring --to 2023-01-31"))
        self.assertIn("No expenses", self.run_command("list --search nothing"))
        self.assertIn("Invalid input", self.run_command("list --from soon"))
        self.assertIn("Invalid input", self.run_command("list --colour red"))
        self.assertIn("Invalid input", self.run_command("list --category"))

    def test_update(self):
        add_expense(10, "Tea", "cash", "2023-03-01")
        output = self.run_command('update 1 --amount 99 --paid-by upi --category rent --desc Monthly rent')
        self.assertIn("Updated expense #1", output)
        expense = expenses[0]
        self.assertEqual(expense.amount, 99)
        self.assertEqual(expense.paid_by, "upi")
        self.assertEqual(expense.category_name, "Rent")
        self.assertEqual(expense.description, "Monthly rent")

        self.assertIn("Expense not found", self.run_command("update 9 --amount 1"))
        self.assertIn("Invalid input", self.run_command("update 1 --colour red"))
        self.assertIn("Invalid input", self.run_command("update 1 --amount"))
        self.assertIn("Invalid input", self.run_command("update 1 --date someday"))
        self.assertIn("Usage", self.run_command("update first"))

    def test_edit_and_end(self):
        self.run_command("add 10 bank Rent 2023-01-31 --recur monthly")
        self.assertIn("next due", self.run_command("edit 1 --recur weekly --start 2023-03-01"))
        self.assertEqual(expenses[0].recurring.frequency, RecurrenceFrequency.WEEKLY)
        self.assertIn("Invalid input", self.run_command("edit 1 --remind soon"))
        self.assertIn("Expense not found", self.run_command("edit 5 --recur daily"))

        self.assertIn("Ended recurrence", self.run_command("end 1"))
        self.assertFalse(expenses[0].is_recurring)
        self.assertIn("Expense not found", self.run_command("end 7"))
        self.assertIn("Usage", self.run_command("end"))

    def test_delete(self):
        add_expense(10, "Tea", "cash", "2023-03-01")
        self.assertIn("Deleted expense #1", self.run_command("delete 1"))
        self.assertIn("Expense not found", self.run_command("delete 1"))
        self.assertIn("Usage", self.run_command("delete abc"))
        self.assertEqual(active_expenses(), [])

    def test_category(self):
        self.assertIn("Added category: Office Supplies", self.run_command("category add Office Supplies"))
        self.assertIn("Office Supplies", self.run_command("category list"))
        self.assertIn("Error: Category already exists", self.run_command("category add rent"))

        add_expense(10, "Rent", "bank", "2023-03-01")
        self.assertIn("Error: Category is in use", self.run_command("category delete Rent"))
        self.assertIn("Deleted category: Tea", self.run_command("category delete Tea"))
        self.assertIn("Category not found: Nope", self.run_command("category delete Nope"))
        self.assertIn("Manage categories", self.run_command("category"))

        expense_categories.clear()
        self.assertIn("No categories defined", self.run_command("category list"))

    def test_upcoming(self):
        self.assertIn("Nothing due in the next 7 days", self.run_command("upcoming 7"))
        self.assertIn("Days must be a number", self.run_command("upcoming soon"))

        add_expense(900, "Rent", "bank", date.today(), is_recurring=True,
                    frequency="monthly", start_date=date.today())
        output = self.run_command("upcoming")
        self.assertIn("#1 Rent $900.00 (monthly, pending)", output)

    def test_reminders(self):
        self.assertIn("No reminders", self.run_command("reminders"))
        add_expense(900, "Rent", "bank", date.today(), is_recurring=True,
                    frequency="weekly", start_date=date.today())
        self.assertIn("! #1 Rent due", self.run_command("reminders"))

    def test_refresh(self):
        expense = add_expense(1500, "Rent", "bank", "2023-01-31", is_recurring=True,
                              frequency="monthly", start_date="2023-01-31", today=date(2023, 2, 15))
        self.assertIn("Updated 1 due dates", self.run_command("refresh"))
        self.assertGreaterEqual(expense.next_due_date, date.today())
        self.assertIn("Updated 0 due dates", self.run_command("refresh"))

    def test_save_and_load(self):
        self.assertIn("No save files available", self.run_command("load"))

        add_expense(10, "Tea", "cash", "2023-03-01")
        self.assertIn("Saved as 'test_cli'", self.run_command("save test_cli"))
        expenses.clear()

        self.assertIn("Loaded 1 expenses", self.run_command("load test_cli"))
        self.assertIn("Could not load 'missing'", self.run_command("load missing"))

        expenses.clear()
        with patch("builtins.input", return_value="0"):
            self.assertIn("Invalid selection", self.run_command("load"))
        self.assertEqual(expenses, [])
        with patch("builtins.input", return_value="2"):
            self.assertIn("Invalid selection", self.run_command("load"))
        with patch("builtins.input", return_value="1"):
            self.assertIn("Loaded 1 expenses", self.run_command("load"))

    def test_save_failure(self):
        with patch("recurring.cli.save_data", return_value=False):
            self.assertIn("Could not save 'default'", self.run_command("save"))

    def test_exit(self):
        out = io.StringIO()
        with redirect_stdout(out):
            self.assertTrue(self.cli.onecmd("exit"))
        self.assertIn("Goodbye!", out.getvalue())


class TestMain(unittest.TestCase):
    def setUp(self):
        reset_book()

    def test_main_loads_default_save(self):
        with patch("recurring.main.ExpenseRecurrenceCLI") as shell, \
                patch("recurring.main.list_save_files", return_value=["default"]), \
                patch("recurring.main.load_data", return_value=True) as load, \
                patch("recurring.main.refresh_due_dates") as refresh, \
                patch("logging.basicConfig"):
            main()

        load.assert_called_once_with("default")
        refresh.assert_called_once()
        shell.return_value.cmdloop.assert_called_once()
        self.assertEqual(len(expense_categories), 7)

    def test_main_without_saves(self):
        with patch("recurring.main.ExpenseRecurrenceCLI") as shell, \
                patch("recurring.main.list_save_files", return_value=[]), \
                patch("recurring.main.load_data") as load, \
                patch("logging.basicConfig"):
            main()

        load.assert_not_called()
        shell.return_value.cmdloop.assert_called_once()

    def test_run_as_module(self):
        with patch("recurring.main.main") as entry:
            runpy.run_module("recurring", run_name="__main__")
        entry.assert_called_once()


if __name__ == "__main__":
    unittest.main()
