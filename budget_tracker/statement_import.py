"""Loading of bank statement CSV exports into the ``entry`` table.

Statements are ``;`` separated with a header row and twelve positional
columns. Dates are written ``DD.MM.YYYY`` and amounts use a comma as the
decimal separator with spaces grouping the thousands (``-1 234,56``).
"""

import csv
import io
import uuid
from collections import namedtuple
from datetime import datetime

from flask import current_app

from .db import DATABASE_ERRORS

STATEMENT_COLUMNS = [
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
]

ImportSummary = namedtuple("ImportSummary", ["loaded", "skipped"])

INSERT_ENTRY_SQL = """
    INSERT INTO entry (id, {columns})
    VALUES (?, {placeholders})
    ON CONFLICT DO NOTHING
""".format(
    columns=", ".join(STATEMENT_COLUMNS),
    placeholders=", ".join("?" for _ in STATEMENT_COLUMNS),
)


class StatementImportError(ValueError):
    """Raised when a statement file cannot be parsed."""


def decode_statement_bytes(file_bytes):
    for encoding in ["utf-8-sig", "utf-8", "cp1250", "cp1252", "latin-1"]:
        try:
            return file_bytes.decode(encoding)
        except UnicodeDecodeError:
            continue
    return None


def parse_statement_date(value):
    cleaned = (value or "").strip()
    for fmt in ["%d.%m.%Y", "%Y-%m-%d"]:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    raise StatementImportError(f"invalid date: {value!r}")


def parse_statement_amount(value):
    cleaned = (value or "").replace(",", ".").replace(" ", "").replace("\xa0", "")
    try:
        return float(cleaned)
    except ValueError as exc:
        raise StatementImportError(f"invalid amount: {value!r}") from exc


def read_statement(text, delimiter=";"):
    """Parse statement text into dicts keyed by ``STATEMENT_COLUMNS``."""
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    next(reader, None)

    records = []
    for record in reader:
        if not any(field.strip() for field in record):
            continue
        if len(record) < len(STATEMENT_COLUMNS):
            raise StatementImportError(
                f"line {reader.line_num}: expected {len(STATEMENT_COLUMNS)} columns, got {len(record)}"
            )
        row = {name: record[idx].strip() for idx, name in enumerate(STATEMENT_COLUMNS)}
        try:
            row["accounting_date"] = parse_statement_date(row["accounting_date"]).isoformat()
            row["currency_date"] = parse_statement_date(row["currency_date"]).isoformat()
            row["amount"] = parse_statement_amount(row["amount"])
        except StatementImportError as exc:
            raise StatementImportError(f"line {reader.line_num}: {exc}") from exc
        records.append(row)
    return records


def load_statement(db, text, delimiter=";"):
    logger = current_app.logger
    records = read_statement(text, delimiter=delimiter)

    loaded = 0
    skipped = 0
    try:
        for row in records:
            params = [str(uuid.uuid4())] + [row[name] for name in STATEMENT_COLUMNS]
            cur = db.execute(INSERT_ENTRY_SQL, params)
            if cur.rowcount == 0:
                skipped += 1
                logger.warning("cannot load entry: duplicate of an existing entry %s", row)
                continue
            loaded += 1
        db.commit()
    except DATABASE_ERRORS as exc:
        db.rollback()
        logger.error("cannot insert statement entry: %s", exc)
        raise

    logger.info("%s records were loaded to db (%s duplicates skipped)", loaded, skipped)
    return ImportSummary(loaded=loaded, skipped=skipped)
