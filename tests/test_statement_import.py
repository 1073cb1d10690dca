from datetime import date

import pytest

from budget_tracker.statement_import import (
    StatementImportError,
    decode_statement_bytes,
    parse_statement_amount,
    parse_statement_date,
    read_statement,
)

HEADER = "Data ksiegowania;Data waluty;Nadawca / Odbiorca;Adres;Rachunek zrodlowy;Rachunek docelowy;Tytul;Kwota;Waluta;Numer referencyjny;Typ operacji;Kategoria\n"


def test_parse_statement_amount_handles_comma_and_grouping_spaces():
    assert parse_statement_amount("-1 234,56") == -1234.56
    assert parse_statement_amount("12,5") == 12.5
    assert parse_statement_amount("2\xa0000,00") == 2000.0


def test_parse_statement_amount_rejects_garbage():
    with pytest.raises(StatementImportError, match="abc"):
        parse_statement_amount("abc")


def test_parse_statement_date_accepts_dotted_and_iso_dates():
    assert parse_statement_date("05.01.2026") == date(2026, 1, 5)
    assert parse_statement_date(" 2026-01-05 ") == date(2026, 1, 5)

    with pytest.raises(StatementImportError):
        parse_statement_date("31.02.2026")


def test_read_statement_maps_positional_columns():
    text = HEADER + "05.01.2026;04.01.2026;Shop A;Main St 1;PL11;PL22;Groceries;-1 234,56;PLN;REF1;Card;Food\n\n"

    rows = read_statement(text)

    assert rows == [
        {
            "accounting_date": "2026-01-05",
            "currency_date": "2026-01-04",
            "sender_or_receiver": "Shop A",
            "address": "Main St 1",
            "source_account": "PL11",
            "destination_account": "PL22",
            "title": "Groceries",
            "amount": -1234.56,
            "currency": "PLN",
            "reference_number": "REF1",
            "operation_type": "Card",
            "category": "Food",
        }
    ]


def test_read_statement_reports_line_of_short_row():
    text = HEADER + "05.01.2026;04.01.2026;Shop A\n"

    with pytest.raises(StatementImportError, match="line 2"):
        read_statement(text)


def test_read_statement_reports_line_of_bad_amount():
    text = (
        HEADER
        + "05.01.2026;04.01.2026;Shop A;;PL11;PL22;Groceries;-10,00;PLN;REF1;Card;Food\n"
        + "06.01.2026;05.01.2026;Shop B;;PL11;PL22;Groceries;ten;PLN;REF2;Card;Food\n"
    )

    with pytest.raises(StatementImportError, match="line 3: invalid amount"):
        read_statement(text)


def test_read_statement_honours_delimiter():
    text = HEADER.replace(";", ",") + "05.01.2026,04.01.2026,Shop,,PL11,PL22,T,\"-3,50\",PLN,R,Card,Food\n"

    rows = read_statement(text, delimiter=",")

    assert rows[0]["amount"] == -3.5


def test_decode_statement_bytes_falls_back_to_cp1250():
    encoded = "Zakupy spożywcze".encode("cp1250")

    assert decode_statement_bytes(encoded) == "Zakupy spożywcze"
    assert decode_statement_bytes("\ufeffheader".encode("utf-8")) == "header"
