import cmd
import shlex
from datetime import date

from recurring.config import LOOK_AHEAD_DAYS
from recurring.logic import (
    add_category,
    delete_category,
    list_categories,
    add_expense,
    update_expense,
    update_recurrence,
    end_recurrence,
    delete_expense,
    active_expenses,
    filter_expenses,
    refresh_due_dates,
    upcoming_recurring,
    reminders_due,
    project_next_due_date,
    normalize_date,
    format_due_date,
)
from recurring.models import RecurrenceFrequency
from recurring.storage import save_data, load_data, list_save_files


FREQUENCY_NAMES = "/".join(f.value for f in RecurrenceFrequency)


class ExpenseRecurrenceCLI(cmd.Cmd):
    prompt = "(expenses) "

    def __init__(self):
        super().__init__()
        self.intro = "Recurring expenses. Type 'help' for commands."

    # ===== CORE COMMANDS =====
    def do_add(self, arg):
        """Add an expense: add <amount> <cash|bank|upi|card> <category> [YYYY-MM-DD] [--recur <frequency>] [--start YYYY-MM-DD] [--remind DAYS] [--desc "description"]"""
        try:
            args = self._parse_add_args(arg)
            expense = add_expense(
                amount=args['amount'],
                category_name=args['category'],
                paid_by=args['paid_by'],
                expense_date=args['date'],
                description=args['desc'],
                is_recurring=bool(args['frequency']),
                frequency=args['frequency'],
                start_date=args['start'] or args['date'],
                reminder_days_before=args['remind'],
            )
            confirmation = f"✓ Added expense #{expense.id} of ${expense.amount:.2f}"
            if expense.is_recurring:
                confirmation += (f" (recurring {expense.recurring.frequency.value},"
                                 f" next due {format_due_date(expense.next_due_date)})")
            print(confirmation)
        except ValueError as e:
            print(f"Invalid input: {e}")

    def do_list(self, arg):
        """List active expenses: list [--from DATE] [--to DATE] [--category NAME] [--paid-by MODE] [--recurring|--one-off] [--search TEXT]"""
        try:
            filters = self._parse_list_filters(shlex.split(arg))
        except ValueError as e:
            print(f"Invalid input: {e}")
            return

        items = filter_expenses(**filters)
        if not items:
            print("No expenses")
            return
        for e in items:
            line = f"  #{e.id} {e.date.isoformat()} {e.category_name}: ${e.amount:.2f} ({e.paid_by})"
            if e.is_recurring and e.recurring:
                line += f" [{e.recurring.frequency.value}, next due {format_due_date(e.next_due_date)}]"
            print(line)

    def do_update(self, arg):
        """Edit an expense: update <ID> [--amount X] [--date YYYY-MM-DD] [--category NAME] [--paid-by MODE] [--notes TEXT] [--desc "description"]"""
        try:
            args = shlex.split(arg)
        except ValueError as e:
            print(f"Invalid input: {e}")
            return
        if not args or not args[0].isdigit():
            print("Usage: update <ID> [--amount X] [--date DATE] [--category NAME] [--paid-by MODE] [--notes TEXT] [--desc TEXT]")
            return

        fields = {}
        flags = {
            '--amount': 'amount',
            '--date': 'expense_date',
            '--category': 'category_name',
            '--paid-by': 'paid_by',
            '--notes': 'notes',
        }
        try:
            i = 1
            while i < len(args):
                if args[i] == '--desc':
                    fields['description'] = ' '.join(args[i+1:])
                    break
                if args[i] not in flags:
                    raise ValueError(f"Unknown flag: {args[i]}")
                if i + 1 >= len(args):
                    raise ValueError(f"Missing value after {args[i]}")
                fields[flags[args[i]]] = args[i+1]
                i += 2

            expense = update_expense(int(args[0]), **fields)
            print(f"✓ Updated expense #{expense.id}")
        except ValueError as e:
            print(f"Invalid input: {e}")
        except KeyError:
            print("Expense not found")

    def do_due(self, arg):
        """Preview the next due date: due <start YYYY-MM-DD> <frequency> [today YYYY-MM-DD]"""
        args = arg.split()
        if len(args) < 2:
            print(f"Usage: due <start> <{FREQUENCY_NAMES}> [today]")
            return
        today = args[2] if len(args) > 2 else None
        if today is not None and normalize_date(today) is None:
            print("Date must be in YYYY-MM-DD format")
            return
        result = project_next_due_date(args[0], args[1], today)
        print(f"Next due: {format_due_date(result, placeholder='Not set')}")

    def do_edit(self, arg):
        """Change recurrence: edit <ID> [--recur <frequency>] [--start YYYY-MM-DD] [--remind DAYS]"""
        args = arg.split()
        if not args or not args[0].isdigit():
            print("Usage: edit <ID> [--recur <frequency>] [--start DATE] [--remind DAYS]")
            return
        try:
            opts = self._parse_recur_flags(args[1:])
            expense = update_recurrence(
                int(args[0]),
                is_recurring=True,
                frequency=opts['frequency'],
                start_date=opts['start'],
                reminder_days_before=opts['remind'],
            )
            print(f"✓ Expense #{expense.id} next due {format_due_date(expense.next_due_date)}")
        except ValueError as e:
            print(f"Invalid input: {e}")
        except KeyError:
            print("Expense not found")

    def do_end(self, arg):
        """Stop an expense from recurring: end <ID>"""
        arg = arg.strip()
        if not arg.isdigit():
            print("Usage: end <ID>")
            return
        try:
            end_recurrence(int(arg))
            print(f"✓ Ended recurrence for expense #{arg}")
        except KeyError:
            print("Expense not found")

    def do_delete(self, arg):
        """Delete an expense: delete <ID>"""
        arg = arg.strip()
        if not arg.isdigit():
            print("Usage: delete <ID>")
            return
        if delete_expense(int(arg)):
            print(f"✓ Deleted expense #{arg}")
        else:
            print("Expense not found")

    # ===== CATEGORY MANAGEMENT =====
    def do_category(self, arg):
        """Manage categories: category <add|list|delete> [name]"""
        args = arg.split(maxsplit=1)
        if not args:
            self.do_help("category")
            return

        try:
            if args[0] == "add" and len(args) > 1:
                cat = add_category(args[1])
                print(f"✓ Added category: {cat.name}")
            elif args[0] == "list":
                categories = list_categories()
                if not categories:
                    print("No categories defined")
                    return
                print("\nCategories:")
                for cat in categories:
                    print(f"  {cat.name}{' (default)' if cat.is_default else ''}")
            elif args[0] == "delete" and len(args) > 1:
                if delete_category(args[1]):
                    print(f"✓ Deleted category: {args[1]}")
                else:
                    print(f"Category not found: {args[1]}")
            else:
                self.do_help("category")
        except ValueError as e:
            print(f"Error: {e}")

    # ===== SCHEDULE REPORTS =====
    def do_upcoming(self, arg):
        """Show recurring expenses due soon: upcoming [days]"""
        try:
            days = int(arg) if arg.strip() else LOOK_AHEAD_DAYS
        except ValueError:
            print("Days must be a number")
            return
        items = upcoming_recurring(look_ahead_days=days)
        if not items:
            print(f"Nothing due in the next {days} days")
            return
        print(f"\n{' Due in the next ' + str(days) + ' days ':-^50}")
        for item in items:
            print(f"  {format_due_date(item['next_due_date'])}  #{item['id']} {item['category']}"
                  f" ${item['amount']:.2f} ({item['frequency']}, {item['status']})")

    def do_reminders(self, arg):
        """Show recurring expenses whose reminder is due today"""
        items = reminders_due()
        if not items:
            print("No reminders")
            return
        for item in items:
            print(f"  ! #{item['id']} {item['category']} due {format_due_date(item['next_due_date'])}")

    def do_refresh(self, arg):
        """Recompute next due dates for all recurring expenses"""
        changed = refresh_due_dates()
        print(f"✓ Updated {changed} due dates")

    # ===== DATA MANAGEMENT =====
    def do_save(self, arg):
        """Save current data: save [name=default]"""
        name = arg.strip() or "default"
        if save_data(name):
            print(f"✓ Saved as '{name}'")
        else:
            print(f"Could not save '{name}'")

    def do_load(self, arg):
        """Load saved data: load [name]"""
        saves = list_save_files()
        if not saves:
            print("No save files available")
            return

        if not arg:
            print("Available saves:")
            for i, name in enumerate(saves, 1):
                print(f"{i}. {name}")
            try:
                choice = int(input("Select save: ")) - 1
                if choice < 0:
                    raise IndexError(choice)
                name = saves[choice]
            except (ValueError, IndexError):
                print("Invalid selection")
                return
        else:
            name = arg.strip()

        if load_data(name):
            print(f"✓ Loaded {len(active_expenses())} expenses")
        else:
            print(f"Could not load '{name}'")

    # ===== UTILITIES =====
    def do_exit(self, arg):
        """Exit the program"""
        print("Goodbye!")
        return True

    # ===== HELPERS =====
    def _parse_add_args(self, arg):
        """Parse add command arguments"""
        args = shlex.split(arg)
        if len(args) < 3:
            raise ValueError("Missing required arguments (amount, payment mode and category)")

        try:
            amount = float(args[0])
        except ValueError:
            raise ValueError("Amount must be a number")

        result = {
            'amount': amount,
            'paid_by': args[1].lower(),
            'category': args[2],
            'date': date.today(),
            'desc': "",
        }

        rest = []
        i = 3
        while i < len(args):
            if args[i] == '--desc':
                result['desc'] = ' '.join(args[i+1:])
                break
            if args[i].startswith('--'):
                rest.extend(args[i:i+2])
                i += 2
                continue
            parsed = normalize_date(args[i])
            if parsed is None:
                raise ValueError(f"Unexpected argument: {args[i]}")
            result['date'] = parsed
            i += 1

        result.update(self._parse_recur_flags(rest))
        return result

    @staticmethod
    def _parse_recur_flags(args):
        result = {'frequency': None, 'start': None, 'remind': None}
        i = 0
        while i < len(args):
            if i + 1 >= len(args):
                raise ValueError(f"Missing value after {args[i]}")
            flag, value = args[i], args[i+1]
            if flag == '--recur':
                if RecurrenceFrequency.parse(value.lower()) is None:
                    raise ValueError(f"Invalid interval, use: {FREQUENCY_NAMES}")
                result['frequency'] = value.lower()
            elif flag == '--start':
                result['start'] = normalize_date(value)
                if result['start'] is None:
                    raise ValueError("Date must be in YYYY-MM-DD format")
            elif flag == '--remind':
                if not value.isdigit():
                    raise ValueError("Reminder days must be a whole number")
                result['remind'] = int(value)
            else:
                raise ValueError(f"Unknown flag: {flag}")
            i += 2
        return result

    @staticmethod
    def _parse_list_filters(args):
        """Helper for filtered listing"""
        filters = {
            'date_range': None,
            'category_name': None,
            'paid_by': None,
            'is_recurring': None,
            'query': None
        }

        i = 0
        while i < len(args):
            if args[i] == "--recurring":
                filters['is_recurring'] = True
                i += 1
                continue
            if args[i] == "--one-off":
                filters['is_recurring'] = False
                i += 1
                continue
            if i + 1 >= len(args):
                raise ValueError(f"Missing value after {args[i]}")
            value = args[i+1]
            if args[i] in ("--from", "--to"):
                d = normalize_date(value)
                if d is None:
                    raise ValueError("Date must be in YYYY-MM-DD format")
                start, end = filters['date_range'] or (date.min, date.max)
                filters['date_range'] = (d, end) if args[i] == "--from" else (start, d)
            elif args[i] == "--category":
                filters['category_name'] = value
            elif args[i] == "--paid-by":
                filters['paid_by'] = value
            elif args[i] == "--search":
                filters['query'] = value
            else:
                raise ValueError(f"Unknown flag: {args[i]}")
            i += 2

        return filters


if __name__ == "__main__":
    ExpenseRecurrenceCLI().cmdloop()
