import logging

from recurring.cli import ExpenseRecurrenceCLI
from recurring.config import LOG_LEVEL
from recurring.logic import refresh_due_dates, ensure_default_categories
from recurring.storage import load_data, list_save_files


def main():
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Pick up where the last session left off
    if "default" in list_save_files() and load_data("default"):
        refresh_due_dates()
    ensure_default_categories()

    ExpenseRecurrenceCLI().cmdloop()


if __name__ == "__main__":
    main()
