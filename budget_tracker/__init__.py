import os
import re
import uuid
from datetime import date, datetime, timezone

import click
from flask import (
    Flask,
    g,
    jsonify,
    render_template,
    request,
)

from .components import build_table, column_names
from .db import DATABASE_ERRORS, connect_db, is_unique_violation, parse_database_config
from .db_migrations import apply_migrations, get_db_health
from .pagination import normalize, paginate, to_limit_offset
from .statement_import import StatementImportError, decode_statement_bytes, load_statement


DEFAULT_MAIN_ACCOUNT_ID = "1e7a4379-4fd5-45df-ba1b-fd6f3fc34717"


class DatabaseInitError(RuntimeError):
    """Raised when the database cannot be opened or migrated."""


class NotificationError(Exception):
    """Raised by fragment handlers; rendered as an error notification."""


def month_range(year=None, month=None, today=None):
    """Return ``(first day, first day of next month)`` for ``year``/``month``.

    Missing parts default to ``today``; an impossible month falls back to the
    current one.
    """
    today = today or date.today()
    try:
        start = date(year or today.year, month or today.month, 1)
        return start, first_of_next_month(start)
    except (ValueError, OverflowError):
        start = today.replace(day=1)
        return start, first_of_next_month(start)


def first_of_next_month(day):
    return date(day.year + day.month // 12, day.month % 12 + 1, 1)


def split_references(value):
    return [ref for ref in (part.strip() for part in re.split(r"[,\n]", value or "")) if ref]


def format_amount(value):
    try:
        return f"{float(value):.2f}"
    except (TypeError, ValueError):
        return "0.00"


def height_ratios(records):
    if not records:
        return []
    largest = abs(records[0]["amount"])
    elements = []
    for record in records:
        ratio = round(abs(record["amount"]) / largest * 100) if largest else 0
        elements.append({
            "amount": record["amount"],
            "category": record["category"],
            "height_ratio": str(ratio),
        })
    return elements


def create_app(test_config=None):
    app = Flask(
        __name__,
        instance_relative_config=True,
        static_folder="public",
        static_url_path="/public",
    )
    app.config.from_mapping(
        SECRET_KEY="dev",
        DATABASE=os.path.join(app.instance_path, "budget_tracker.sqlite"),
        MAIN_ACCOUNT_ID=os.environ.get("BUDGET_MAIN_ACCOUNT_ID", DEFAULT_MAIN_ACCOUNT_ID),
        ENTRY_PAGE_SIZE=10,
        TABLE_PAGE_SIZE=25,
        MAX_PAGE_SIZE=1000,
        STATEMENT_DELIMITER=";",
        LOG_LEVEL="INFO",
    )

    if test_config is not None:
        app.config.update(test_config)

    os.makedirs(app.instance_path, exist_ok=True)
    app.config.setdefault("DB_INIT_ERROR", None)
    app.logger.setLevel(app.config["LOG_LEVEL"])
    app.add_template_filter(format_amount, "nor_amt")

    def database_config():
        return parse_database_config(app.config["DATABASE"])

    @app.teardown_appcontext
    def close_db(_=None):
        db = g.pop("db", None)
        if db is not None:
            db.close()

    def get_db():
        if "db" not in g:
            try:
                g.db = connect_db(database_config())
            except DATABASE_ERRORS as exc:
                message = f"Unable to open database {app.config['DATABASE']}: {exc}"
                app.logger.error(message)
                app.config["DB_INIT_ERROR"] = message
                raise DatabaseInitError(message) from exc
        return g.db

    def init_db():
        try:
            apply_migrations(database_config())
            app.config["DB_INIT_ERROR"] = None
        except DATABASE_ERRORS + (OSError, RuntimeError) as exc:
            message = f"Failed to initialize database {app.config['DATABASE']}: {exc}"
            app.logger.error(message)
            app.config["DB_INIT_ERROR"] = message
            raise DatabaseInitError(message) from exc

    def render(name, **context):
        app.logger.debug("render %r", name)
        return render_template(name, **context)

    def render_notification(info=None, warn=None, error=None):
        return render("notification.html", info=info, warn=warn, error=error)

    @app.errorhandler(NotificationError)
    def notification_error(exc):
        return render_notification(error=str(exc))

    @app.cli.command("init-db")
    def init_db_command():
        init_db()
        click.echo("Initialized the database.")

    @app.cli.command("import-statement")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    def import_statement_command(path):
        with open(path, "rb") as fh:
            text = decode_statement_bytes(fh.read())
        if text is None:
            raise click.ClickException(f"cannot decode {path}")
        try:
            summary = load_statement(get_db(), text, delimiter=app.config["STATEMENT_DELIMITER"])
        except StatementImportError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Loaded {summary.loaded} entries, skipped {summary.skipped} duplicates.")

    @app.get("/health/db")
    def db_health():
        try:
            return jsonify(get_db_health(database_config()))
        except DATABASE_ERRORS as exc:
            return jsonify({
                "ok": False,
                "schema_version": 0,
                "missing_tables": [],
                "missing_columns": {},
                "missing_indexes": [],
                "error": str(exc),
            }), 500

    @app.before_request
    def check_db_init():
        if app.config.get("DB_INIT_ERROR"):
            message = app.config["DB_INIT_ERROR"]
            return f"<h1>Database initialization failed</h1><p>{message}</p>", 500
        return None

    @app.get("/")
    def index():
        start, end = month_range()
        goal = get_db().execute(
            "SELECT SUM(amount) AS goal FROM entry WHERE accounting_date >= ? AND accounting_date < ?",
            (start.isoformat(), end.isoformat()),
        ).fetchone()["goal"]
        return render("index.html", goal=goal or 0)

    @app.get("/details")
    def details():
        entry_id = request.args.get("entry_id", "")
        entry = get_db().execute("SELECT * FROM entry WHERE id = ?", (entry_id,)).fetchone()
        if entry is None:
            return render("error.html", error=f"Entry {entry_id!r} not found."), 404
        return render("entry_details.html", entry=entry)

    @app.get("/expenses")
    def expenses():
        bounds = get_db().execute(
            """
            SELECT MIN(accounting_date) AS first_date, MAX(accounting_date) AS last_date
            FROM entry
            WHERE
                source_account IN (
                    SELECT reference FROM account_reference WHERE account_id = ?
                ) AND
                amount < 0
            """,
            (app.config["MAIN_ACCOUNT_ID"],),
        ).fetchone()

        today = date.today()
        if bounds["first_date"]:
            first_year = date.fromisoformat(bounds["first_date"]).year
            last_year = date.fromisoformat(bounds["last_date"]).year
            years = list(range(first_year, last_year + 1))
        else:
            years = [today.year]

        return render(
            "expenses.html",
            years=years,
            current_year=today.year,
            current_month=today.month,
        )

    @app.get("/api/expenses")
    def api_expenses():
        start, end = month_range(
            request.args.get("year", type=int),
            request.args.get("month", type=int),
        )
        records = get_db().execute(
            """
            SELECT
                category,
                SUM(amount) AS amount
            FROM entry
            WHERE
                source_account IN (
                    SELECT reference FROM account_reference WHERE account_id = ?
                ) AND
                accounting_date >= ? AND
                accounting_date < ? AND
                amount < 0
            GROUP BY category
            ORDER BY SUM(amount) ASC
            """,
            (app.config["MAIN_ACCOUNT_ID"], start.isoformat(), end.isoformat()),
        ).fetchall()

        max_elements = request.args.get("max_elements", type=int)
        if max_elements is not None:
            records = records[:max(max_elements, 0)]

        return render(
            "api_expenses.html",
            expenses=height_ratios(records),
            date_range=f"{start.isoformat()} - {end.isoformat()}",
        )

    @app.get("/api/entry")
    def api_entry():
        db = get_db()
        count = db.execute("SELECT COUNT(*) AS total FROM entry").fetchone()["total"]
        limit, offset, pager = paginate(
            request.args.get("page", type=int),
            request.args.get("entries_per_page", type=int),
            count,
            "/api/entry",
            default_size=app.config["ENTRY_PAGE_SIZE"],
            max_size=app.config["MAX_PAGE_SIZE"],
        )
        entries = db.execute(
            "SELECT * FROM entry ORDER BY accounting_date DESC, id LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()
        return render("entry.html", entries=entries, pager=pager)

    @app.post("/api/upload")
    def api_upload():
        for name, storage in request.files.items(multi=True):
            app.logger.info("name=%s file_name=%s", name, storage.filename)
            text = decode_statement_bytes(storage.read())
            if text is None:
                app.logger.error("cannot load file %s: unsupported encoding", storage.filename)
                continue
            try:
                load_statement(get_db(), text, delimiter=app.config["STATEMENT_DELIMITER"])
            except (StatementImportError,) + DATABASE_ERRORS as exc:
                app.logger.error("cannot load file %s: %s", storage.filename, exc)
        return "", 204

    @app.get("/accounts")
    def accounts():
        return render("accounts.html")

    @app.post("/accounts")
    def create_account():
        name = (request.form.get("name") or "").strip()
        references = split_references(request.form.get("references"))
        if not name:
            raise NotificationError("Account name is required.")
        if not references:
            raise NotificationError("At least one account reference is required.")

        db = get_db()
        account_id = str(uuid.uuid4())
        try:
            db.execute(
                "INSERT INTO account (id, name, created_at) VALUES (?, ?, ?)",
                (account_id, name, datetime.now(timezone.utc).isoformat(timespec="seconds")),
            )
            for reference in references:
                db.execute(
                    "INSERT INTO account_reference (account_id, reference) VALUES (?, ?)",
                    (account_id, reference),
                )
            db.commit()
        except DATABASE_ERRORS as exc:
            db.rollback()
            if is_unique_violation(exc):
                raise NotificationError("Account reference is already assigned to another account.") from exc
            app.logger.error("cannot create account %s: %s", name, exc)
            raise NotificationError(f"Cannot create account: {exc}") from exc

        app.logger.info("created account id=%s references=%s", account_id, references)
        return render_notification(info=f"Account {name} created.")

    @app.get("/api/accounts")
    def api_accounts():
        query = normalize(
            request.args.get("page", type=int),
            request.args.get("entries_per_page", type=int),
            default_size=app.config["TABLE_PAGE_SIZE"],
            max_size=app.config["MAX_PAGE_SIZE"],
        )
        limit, offset = to_limit_offset(query)
        db = get_db()
        try:
            count = db.execute(
                "SELECT COUNT(*) AS total FROM account JOIN account_reference ON id = account_id"
            ).fetchone()["total"]
            cur = db.execute(
                """
                SELECT
                    id,
                    name,
                    account_id,
                    reference
                FROM account
                JOIN account_reference ON id = account_id
                ORDER BY name, reference
                LIMIT ?
                OFFSET ?
                """,
                (limit, offset),
            )
            rows = cur.fetchall()
        except DATABASE_ERRORS as exc:
            app.logger.error("cannot list accounts: %s", exc)
            raise NotificationError(f"Cannot list accounts: {exc}") from exc

        table = build_table(rows, column_names(cur), count, "/api/accounts", query)
        return render("component_table.html", data=table)

    with app.app_context():
        try:
            init_db()
        except DatabaseInitError:
            pass

    app.get_db = get_db
    app.init_db = init_db
    return app
