#!/usr/bin/env python3
"""
Initialize database with tables and sample data
"""
import argparse
from datetime import datetime, timedelta
from decimal import Decimal

from budget_tracker.core.database import SessionLocal, engine, init_db
from budget_tracker.models.budget import Budget, BudgetPeriod
from budget_tracker.models.transaction import Transaction, TransactionType
from budget_tracker.services.progress_calculator import current_date

SAMPLE_BUDGETS = [
    ("Groceries", Decimal("400.00")),
    ("Dining", Decimal("150.00")),
    ("Transport", Decimal("120.00")),
]

SAMPLE_EXPENSES = [
    ("Groceries", Decimal("85.40"), "Weekly shop"),
    ("Groceries", Decimal("112.10"), "Market"),
    ("Dining", Decimal("64.00"), "Dinner out"),
    ("Dining", Decimal("58.50"), "Lunch with team"),
    ("Transport", Decimal("135.00"), "Monthly pass"),
]


def seed_sample_data():
    """Insert a few budgets for the current month and matching expenses"""
    session = SessionLocal()
    try:
        if session.query(Budget).count() > 0:
            print("Budgets already present, skipping sample data")
            return

        today = current_date()
        month_start = today.replace(day=1)
        next_month = (month_start + timedelta(days=32)).replace(day=1)

        for category, amount in SAMPLE_BUDGETS:
            session.add(Budget(
                category=category,
                budget_amount=amount,
                period=BudgetPeriod.MONTHLY,
                start_date=month_start,
                end_date=next_month - timedelta(days=1),
                is_active=True,
            ))

        now = datetime.combine(today, datetime.min.time()) + timedelta(hours=12)
        for category, amount, description in SAMPLE_EXPENSES:
            session.add(Transaction(
                type=TransactionType.EXPENSE,
                amount=amount,
                category=category,
                date=now,
                description=description,
            ))
        session.add(Transaction(
            type=TransactionType.INCOME,
            amount=Decimal("2500.00"),
            category="Salary",
            date=now,
            description="Paycheck",
        ))

        session.commit()
        print(f"Seeded {len(SAMPLE_BUDGETS)} budgets and {len(SAMPLE_EXPENSES) + 1} transactions")
    finally:
        session.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--sample-data", action="store_true", help="Insert sample budgets and transactions")
    args = parser.parse_args()

    print("Creating database tables...")
    init_db(bind=engine)
    print("Tables created successfully!")

    if args.sample_data:
        seed_sample_data()
