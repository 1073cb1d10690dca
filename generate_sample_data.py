import random
import uuid
from datetime import date, timedelta

from budget_tracker import create_app

CATEGORIES = ["Groceries", "Transport", "Housing", "Utilities", "Entertainment", "Other"]
MAIN_REFERENCE = "PL61109010140000071219812874"


def main():
    app = create_app()
    with app.app_context():
        app.init_db()
        db = app.get_db()
        account_id = app.config["MAIN_ACCOUNT_ID"]

        db.execute("INSERT INTO account (id, name) VALUES (?, ?) ON CONFLICT DO NOTHING", (account_id, "Main"))
        db.execute(
            "INSERT INTO account_reference (account_id, reference) VALUES (?, ?) ON CONFLICT DO NOTHING",
            (account_id, MAIN_REFERENCE),
        )

        start = date.today() - timedelta(days=90)
        for i in range(60):
            day = (start + timedelta(days=i * 1.5)).isoformat()
            db.execute(
                """
                INSERT INTO entry (
                    id, accounting_date, currency_date, sender_or_receiver, source_account,
                    title, amount, currency, category
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(uuid.uuid4()),
                    day,
                    day,
                    f"Shop {i % 7}",
                    MAIN_REFERENCE,
                    f"Sample payment {i + 1}",
                    -round(random.uniform(5, 200), 2),
                    "PLN",
                    random.choice(CATEGORIES),
                ),
            )

        db.commit()
    print("Sample data generated for the main account.")


if __name__ == "__main__":
    main()
