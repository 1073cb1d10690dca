import argparse
from datetime import datetime, timezone

from .db import connect_db, parse_database_config


ENTRY_NATURAL_KEY = (
    "accounting_date",
    "currency_date",
    "sender_or_receiver",
    "source_account",
    "destination_account",
    "title",
    "amount",
    "reference_number",
)

REQUIRED_TABLES = {
    "entry": {
        "columns": {
            "id",
            "accounting_date",
            "currency_date",
            "sender_or_receiver",
            "address",
            "source_account",
            "destination_account",
            "title",
            "amount",
            "currency",
            "reference_number",
            "operation_type",
            "category",
        },
        "indexes": {
            "uq_entry_natural_key",
            "idx_entry_accounting_date",
            "idx_entry_source_account",
        },
    },
    "account": {
        "columns": {"id", "name", "created_at"},
        "indexes": set(),
    },
    "account_reference": {
        "columns": {"account_id", "reference"},
        "indexes": {"idx_account_reference_account_id"},
    },
}


def backend_name(conn):
    return getattr(conn, "backend", "sqlite")


def table_exists(conn, name):
    if backend_name(conn) == "postgres":
        row = conn.execute(
            "SELECT 1 FROM information_schema.tables WHERE table_schema = current_schema() AND table_name = ?",
            (name,),
        ).fetchone()
        return row is not None

    row = conn.execute("SELECT 1 FROM sqlite_master WHERE type='table' AND name = ?", (name,)).fetchone()
    return row is not None


def index_exists(conn, index_name):
    if backend_name(conn) == "postgres":
        row = conn.execute(
            "SELECT 1 FROM pg_indexes WHERE schemaname = current_schema() AND indexname = ?",
            (index_name,),
        ).fetchone()
        return row is not None

    row = conn.execute("SELECT 1 FROM sqlite_master WHERE type='index' AND name = ?", (index_name,)).fetchone()
    return row is not None


def get_table_columns(conn, table):
    if backend_name(conn) == "postgres":
        rows = conn.execute(
            "SELECT column_name FROM information_schema.columns WHERE table_schema = current_schema() AND table_name = ? ORDER BY ordinal_position",
            (table,),
        ).fetchall()
        return {row[0] for row in rows}

    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {row[1] for row in rows}


def add_column_if_missing(conn, table, col_def_sql):
    column = col_def_sql.split()[0]
    if backend_name(conn) == "postgres":
        conn.execute(f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {col_def_sql}")
    elif column not in get_table_columns(conn, table):
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {col_def_sql}")


def create_index_if_missing(conn, index_name, create_sql):
    if not index_exists(conn, index_name):
        conn.execute(create_sql)


def migration_001(conn):
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS entry (
            id TEXT PRIMARY KEY,
            accounting_date TEXT NOT NULL,
            currency_date TEXT NOT NULL,
            sender_or_receiver TEXT NOT NULL DEFAULT '',
            address TEXT NOT NULL DEFAULT '',
            source_account TEXT NOT NULL DEFAULT '',
            destination_account TEXT NOT NULL DEFAULT '',
            title TEXT NOT NULL DEFAULT '',
            amount REAL NOT NULL,
            currency TEXT NOT NULL DEFAULT '',
            reference_number TEXT NOT NULL DEFAULT '',
            operation_type TEXT NOT NULL DEFAULT '',
            category TEXT NOT NULL DEFAULT ''
        )
        """
    )
    create_index_if_missing(
        conn,
        "uq_entry_natural_key",
        f"CREATE UNIQUE INDEX IF NOT EXISTS uq_entry_natural_key ON entry({', '.join(ENTRY_NATURAL_KEY)})",
    )
    create_index_if_missing(
        conn,
        "idx_entry_accounting_date",
        "CREATE INDEX IF NOT EXISTS idx_entry_accounting_date ON entry(accounting_date)",
    )


def migration_002(conn):
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS account (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS account_reference (
            account_id TEXT NOT NULL,
            reference TEXT NOT NULL UNIQUE,
            FOREIGN KEY (account_id) REFERENCES account (id)
        )
        """
    )
    create_index_if_missing(
        conn,
        "idx_account_reference_account_id",
        "CREATE INDEX IF NOT EXISTS idx_account_reference_account_id ON account_reference(account_id)",
    )


def migration_003(conn):
    # Expense breakdowns filter outgoing entries by source account.
    create_index_if_missing(
        conn,
        "idx_entry_source_account",
        "CREATE INDEX IF NOT EXISTS idx_entry_source_account ON entry(source_account)",
    )
    add_column_if_missing(conn, "account", "created_at TEXT")


MIGRATIONS = [
    (1, migration_001),
    (2, migration_002),
    (3, migration_003),
]


def _ensure_schema_version_table(conn):
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """
    )


def current_schema_version(conn):
    _ensure_schema_version_table(conn)
    row = conn.execute("SELECT MAX(version) AS version FROM schema_version").fetchone()
    return int(row[0] or 0)


def validate_required_schema(conn):
    health = inspect_db_health(conn)
    if health["missing_tables"] or any(health["missing_columns"].values()):
        raise RuntimeError(
            "Schema invariants failed after migrations. "
            f"Missing tables={health['missing_tables']}, missing columns={health['missing_columns']}"
        )


def _run_migrations(conn):
    _ensure_schema_version_table(conn)

    applied_versions = {
        row[0] for row in conn.execute("SELECT version FROM schema_version").fetchall()
    }

    for version, migration_fn in MIGRATIONS:
        if version in applied_versions:
            continue
        try:
            migration_fn(conn)
            conn.execute(
                "INSERT INTO schema_version(version, applied_at) VALUES (?, ?)",
                (version, datetime.now(timezone.utc).isoformat(timespec="seconds")),
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    validate_required_schema(conn)


def apply_migrations(db_or_config_or_path):
    if hasattr(db_or_config_or_path, "execute"):
        _run_migrations(db_or_config_or_path)
        return

    config = db_or_config_or_path if isinstance(db_or_config_or_path, dict) else parse_database_config(db_or_config_or_path)
    conn = connect_db(config)
    try:
        _run_migrations(conn)
    finally:
        conn.close()


def inspect_db_health(conn):
    _ensure_schema_version_table(conn)
    missing_tables = []
    missing_columns = {}
    missing_indexes = []

    for table_name, table_spec in REQUIRED_TABLES.items():
        if not table_exists(conn, table_name):
            missing_tables.append(table_name)
            missing_columns[table_name] = sorted(table_spec["columns"])
            missing_indexes.extend(sorted(table_spec["indexes"]))
            continue

        table_cols = get_table_columns(conn, table_name)
        missing_columns[table_name] = sorted(col for col in table_spec["columns"] if col not in table_cols)

        for idx in sorted(table_spec["indexes"]):
            if not index_exists(conn, idx):
                missing_indexes.append(idx)

    return {
        "ok": not missing_tables and not any(missing_columns.values()) and not missing_indexes,
        "schema_version": current_schema_version(conn),
        "missing_tables": missing_tables,
        "missing_columns": missing_columns,
        "missing_indexes": sorted(set(missing_indexes)),
    }


def get_db_health(db_config_or_path):
    config = db_config_or_path if isinstance(db_config_or_path, dict) else parse_database_config(db_config_or_path)
    conn = connect_db(config)
    try:
        return inspect_db_health(conn)
    finally:
        conn.close()


def main():
    parser = argparse.ArgumentParser(description="Check budget tracker DB schema health")
    parser.add_argument("db_path", help="Path to SQLite DB file")
    args = parser.parse_args()
    print(get_db_health(args.db_path))


if __name__ == "__main__":
    main()
