"""
YaadBooks Ledger - Statement Parser Tests

Format detection, Jamaican bank CSV layouts, the generic CSV fallback
and OFX/QFX parsing.
"""

from datetime import date
from decimal import Decimal

import pytest

from app.models.banking import BankTransactionType
from app.services.statement_parser import (
    DetectedFormat,
    detect_format,
    parse_amount,
    parse_statement,
    parse_statement_date,
)
from app.utils.error_handling import StatementParseException


NCB_CSV = (
    "National Commercial Bank Jamaica\n"
    "Account Number: 123456789\n"
    "Currency: JMD\n"
    "\n"
    "Posted Date,Value Date,Narrative,Reference,Debit,Credit,Balance\n"
    '15/01/2024,15/01/2024,POS PURCHASE HI-LO,REF001,"1,250.00",,"8,750.00"\n'
    '16/01/2024,17/01/2024,SALARY DEPOSIT,REF002,,"50,000.00","58,750.00"\n'
)

SCOTIABANK_CSV = (
    "Transaction Date,Transaction Details,Reference Number,Withdrawals,Deposits,Balance\n"
    "2024-01-05,ATM WITHDRAWAL HALF WAY TREE,,5000.00,,45000.00\n"
    "2024-01-06,TRANSFER FROM SAVINGS,TRF123,,20000.00,65000.00\n"
)

JMMB_CSV = (
    "Trans Date,Value Date,Description,Cheque No,Debit Amount,Credit Amount,Running Balance\n"
    "03/01/2024,03/01/2024,JPS ELECTRICITY BILL,,12500.50,,87499.50\n"
    "04/01/2024,04/01/2024,INTEREST EARNED,,,35.25,87534.75\n"
)

SAGICOR_CSV = (
    "Date,Transaction Description,Amount,DR/CR,Reference No,Balance\n"
    "10/01/2024,INTERNET BANKING TRANSFER,15000.00,DR,IB001,35000.00\n"
    "11/01/2024,CUSTOMER PAYMENT INV-1001,8000.00,CR,,43000.00\n"
)

GENERIC_CSV = (
    "Date,Description,Amount\n"
    "2024-01-15,Coffee,-450.00\n"
    "2024-01-16,Refund,120.00\n"
)

OFX_SGML = """OFXHEADER:100
DATA:OFXSGML
VERSION:102

<OFX>
<SIGNONMSGSRSV1><SONRS><FI><ORG>NCB</ORG></FI></SONRS></SIGNONMSGSRSV1>
<BANKMSGSRSV1><STMTTRNRS><STMTRS>
<CURDEF>JMD
<BANKACCTFROM><ACCTID>987654321</BANKACCTFROM>
<BANKTRANLIST>
<STMTTRN>
<TRNTYPE>DEBIT
<DTPOSTED>20240120120000
<TRNAMT>-2500.00
<FITID>FIT001
<NAME>DIGICEL TOPUP
</STMTTRN>
<STMTTRN>
<TRNTYPE>CREDIT
<DTPOSTED>20240118
<TRNAMT>15000.00
<FITID>FIT002
<NAME>CLIENT PAYMENT
<MEMO>INV 2024-001
</STMTTRN>
</BANKTRANLIST>
<LEDGERBAL><BALAMT>52500.00<DTASOF>20240131</LEDGERBAL>
</STMTRS></STMTTRNRS></BANKMSGSRSV1>
</OFX>
"""


# =============================================================================
# VALUE PARSING
# =============================================================================

class TestParseAmount:
    """Tests for statement amount parsing."""

    def test_currency_symbol_and_thousands(self):
        assert parse_amount("J$1,234.56") == Decimal("1234.56")

    def test_parentheses_are_negative(self):
        assert parse_amount("(500.00)") == Decimal("-500.00")

    def test_dr_suffix_is_negative(self):
        assert parse_amount("250.00 DR") == Decimal("-250.00")

    def test_cr_suffix_is_positive(self):
        assert parse_amount("250.00CR") == Decimal("250.00")

    def test_trailing_minus(self):
        assert parse_amount("1,000.00-") == Decimal("-1000.00")

    def test_rounds_half_up_to_cents(self):
        assert parse_amount("10.005") == Decimal("10.01")

    def test_empty_cell_is_none(self):
        assert parse_amount("") is None
        assert parse_amount("  ") is None
        assert parse_amount(None) is None

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_amount("abc")


class TestParseStatementDate:
    """Tests for day-first statement dates."""

    def test_day_first_default(self):
        assert parse_statement_date("05/01/2024") == date(2024, 1, 5)

    def test_iso_date(self):
        assert parse_statement_date("2024-01-31") == date(2024, 1, 31)

    def test_month_name(self):
        assert parse_statement_date("Jan 15, 2024") == date(2024, 1, 15)
        assert parse_statement_date("15-Jan-2024") == date(2024, 1, 15)

    def test_month_first_when_asked(self):
        assert parse_statement_date("01/05/2024", dayfirst=False) == date(2024, 1, 5)

    def test_unparseable_is_none(self):
        assert parse_statement_date("not a date") is None
        assert parse_statement_date("") is None


# =============================================================================
# FORMAT DETECTION
# =============================================================================

class TestDetectFormat:
    """Tests for statement format detection."""

    def test_ofx_by_extension(self):
        assert detect_format("statement.qfx", OFX_SGML.encode()) == DetectedFormat.OFX
        assert detect_format("statement.OFX", OFX_SGML.encode()) == DetectedFormat.OFX

    def test_ofx_content_wins_over_txt_extension(self):
        assert detect_format("export.txt", OFX_SGML.encode()) == DetectedFormat.OFX

    def test_csv_by_extension(self):
        assert detect_format("statement.csv", GENERIC_CSV.encode()) == DetectedFormat.CSV

    def test_csv_by_content(self):
        assert detect_format("download", GENERIC_CSV.encode()) == DetectedFormat.CSV

    def test_binary_is_unrecognized(self):
        assert detect_format("statement.csv", b"PK\x03\x04\x00\x00binary") == DetectedFormat.UNRECOGNIZED

    def test_empty_is_unrecognized(self):
        assert detect_format("statement.csv", b"") == DetectedFormat.UNRECOGNIZED
        assert detect_format("statement.csv", b"   \n\n") == DetectedFormat.UNRECOGNIZED


# =============================================================================
# BANK CSV LAYOUTS
# =============================================================================

class TestBankCsvLayouts:
    """Tests for the Jamaican bank CSV exports."""

    def test_ncb_debit_credit_columns(self):
        statement = parse_statement(NCB_CSV.encode(), file_name="statement.csv")

        assert statement.format == DetectedFormat.CSV
        assert statement.layout == "NCB"
        assert statement.bank_name == "National Commercial Bank Jamaica"
        assert statement.account_number == "123456789"
        assert statement.currency == "JMD"
        assert len(statement.transactions) == 2

        purchase, salary = statement.transactions
        assert purchase.date == date(2024, 1, 15)
        assert purchase.amount == Decimal("-1250.00")
        assert purchase.type == BankTransactionType.DEBIT
        assert purchase.reference == "REF001"
        assert purchase.balance == Decimal("8750.00")

        assert salary.amount == Decimal("50000.00")
        assert salary.type == BankTransactionType.CREDIT
        assert salary.post_date == date(2024, 1, 17)

    def test_scotiabank_withdrawals_deposits(self):
        statement = parse_statement(SCOTIABANK_CSV.encode(), file_name="export.csv")

        assert statement.layout == "SCOTIABANK"
        assert statement.bank_name == "Scotiabank Jamaica"
        amounts = [t.amount for t in statement.transactions]
        assert amounts == [Decimal("-5000.00"), Decimal("20000.00")]
        assert statement.transactions[1].reference == "TRF123"

    def test_jmmb_layout(self):
        statement = parse_statement(JMMB_CSV.encode(), file_name="jmmb_january.csv")

        assert statement.layout == "JMMB"
        bill, interest = statement.transactions
        assert bill.amount == Decimal("-12500.50")
        assert bill.description == "JPS ELECTRICITY BILL"
        assert interest.amount == Decimal("35.25")

    def test_sagicor_direction_column(self):
        statement = parse_statement(SAGICOR_CSV.encode(), file_name="statement.csv")

        assert statement.layout == "SAGICOR"
        transfer, payment = statement.transactions
        assert transfer.amount == Decimal("-15000.00")
        assert transfer.type == BankTransactionType.DEBIT
        assert transfer.reference == "IB001"
        assert payment.amount == Decimal("8000.00")
        assert payment.type == BankTransactionType.CREDIT

    def test_totals_match_signed_amounts(self):
        statement = parse_statement(NCB_CSV.encode(), file_name="statement.csv")
        assert statement.total_credits == Decimal("50000.00")
        assert statement.total_debits == Decimal("-1250.00")


class TestGenericCsv:
    """Tests for the header-driven fallback layout."""

    def test_single_amount_column(self):
        statement = parse_statement(GENERIC_CSV.encode(), file_name="statement.csv")

        assert statement.layout == "GENERIC"
        assert statement.bank_name is None
        assert [t.amount for t in statement.transactions] == [Decimal("-450.00"), Decimal("120.00")]
        assert statement.transactions[0].type == BankTransactionType.DEBIT

    def test_type_column_keeps_signed_amounts(self):
        content = (
            "Date,Description,Amount,Type\n"
            "2024-01-15,Cheque 123 to supplier,-500.00,CHEQUE\n"
            "2024-01-16,Salary,1000.00,DEPOSIT\n"
            "2024-01-17,Card repayment,-75.00,CREDIT CARD PMT\n"
        )
        statement = parse_statement(content.encode(), file_name="statement.csv")

        assert [t.amount for t in statement.transactions] == [
            Decimal("-500.00"), Decimal("1000.00"), Decimal("-75.00"),
        ]

    def test_direction_column_needs_exact_token(self):
        content = (
            "Date,Description,Amount,Dr/Cr\n"
            "2024-01-15,Transfer out,500.00,DR\n"
            "2024-01-16,Lodgement,1000.00,Credit\n"
            "2024-01-17,Adjustment,-20.00,DRAFT\n"
        )
        statement = parse_statement(content.encode(), file_name="statement.csv")

        assert [t.amount for t in statement.transactions] == [
            Decimal("-500.00"), Decimal("1000.00"), Decimal("-20.00"),
        ]

    def test_bank_name_from_file_name(self):
        statement = parse_statement(GENERIC_CSV.encode(), file_name="ncb_statement.csv")

        assert statement.layout == "GENERIC"
        assert statement.bank_name == "National Commercial Bank Jamaica"

    def test_summary_rows_are_skipped(self):
        content = (
            "Date,Description,Debit,Credit,Balance\n"
            ",Opening Balance,,,10000.00\n"
            "2024-01-02,Deposit,,500.00,10500.00\n"
            ",Totals,0.00,500.00,\n"
            ",Closing Balance,,,10500.00\n"
        )
        statement = parse_statement(content.encode(), file_name="statement.csv")

        assert len(statement.transactions) == 1
        assert statement.transactions[0].amount == Decimal("500.00")

    def test_semicolon_delimited(self):
        content = (
            "Date;Description;Amount\n"
            "2024-01-15;Coffee;-450.00\n"
            "2024-01-16;Refund;120.00\n"
        )
        statement = parse_statement(content.encode(), file_name="statement.csv")
        assert len(statement.transactions) == 2

    def test_windows_1252_bytes(self):
        content = b"Date,Description,Amount\n2024-01-15,Caf\xe9 Blue,-450.00\n2024-01-16,Refund,120.00\n"
        statement = parse_statement(content, file_name="statement.csv")
        assert statement.transactions[0].description == "Café Blue"

    def test_utf8_bom(self):
        content = b"\xef\xbb\xbf" + GENERIC_CSV.encode()
        statement = parse_statement(content, file_name="statement.csv")
        assert len(statement.transactions) == 2


class TestCsvErrors:
    """A bad file is rejected whole; nothing partial comes back."""

    def test_bad_date_reports_row(self):
        content = (
            "Date,Description,Amount\n"
            "2024-01-15,Coffee,-450.00\n"
            "32/13/2024,Broken,100.00\n"
        )
        with pytest.raises(StatementParseException) as exc_info:
            parse_statement(content.encode(), file_name="statement.csv")

        assert exc_info.value.row_number == 3
        assert exc_info.value.detected_format == "csv"

    def test_bad_amount_reports_row(self):
        content = (
            "Date,Description,Amount\n"
            "2024-01-15,Coffee,abc\n"
            "2024-01-16,Refund,120.00\n"
        )
        with pytest.raises(StatementParseException) as exc_info:
            parse_statement(content.encode(), file_name="statement.csv")

        assert exc_info.value.row_number == 2

    def test_no_recognisable_header(self):
        content = "foo,bar\n1,2\n3,4\n"
        with pytest.raises(StatementParseException):
            parse_statement(content.encode(), file_name="statement.csv")

    def test_header_without_rows(self):
        with pytest.raises(StatementParseException):
            parse_statement(b"Date,Description,Amount\n", file_name="statement.csv")

    def test_unrecognized_format(self):
        with pytest.raises(StatementParseException) as exc_info:
            parse_statement(b"", file_name="statement.pdf")

        assert exc_info.value.detected_format == "unrecognized"


# =============================================================================
# OFX / QFX
# =============================================================================

class TestOfx:
    """Tests for OFX/QFX statements."""

    def test_sgml_statement(self):
        statement = parse_statement(OFX_SGML.encode(), file_name="january.ofx")

        assert statement.format == DetectedFormat.OFX
        assert statement.bank_name == "NCB"
        assert statement.account_number == "987654321"
        assert statement.currency == "JMD"
        assert statement.closing_balance == Decimal("52500.00")

        # Sorted by date
        payment, topup = statement.transactions
        assert payment.date == date(2024, 1, 18)
        assert payment.amount == Decimal("15000.00")
        assert payment.description == "CLIENT PAYMENT - INV 2024-001"
        assert payment.reference == "FIT002"
        assert payment.category == "CREDIT"

        assert topup.date == date(2024, 1, 20)
        assert topup.amount == Decimal("-2500.00")
        assert topup.type == BankTransactionType.DEBIT

    def test_xml_statement(self):
        content = (
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            '<?OFX OFXHEADER="200" VERSION="220"?>\n'
            "<OFX><BANKMSGSRSV1><STMTTRNRS><STMTRS><CURDEF>USD</CURDEF>"
            "<BANKTRANLIST>"
            "<STMTTRN><TRNTYPE>DEBIT</TRNTYPE><DTPOSTED>20240105</DTPOSTED>"
            "<TRNAMT>-75.50</TRNAMT><FITID>X1</FITID><NAME>AMAZON</NAME></STMTTRN>"
            "</BANKTRANLIST></STMTRS></STMTTRNRS></BANKMSGSRSV1></OFX>"
        )
        statement = parse_statement(content.encode(), file_name="statement.qfx")

        assert statement.currency == "USD"
        assert len(statement.transactions) == 1
        assert statement.transactions[0].amount == Decimal("-75.50")
        assert statement.transactions[0].description == "AMAZON"

    def test_missing_amount_is_rejected(self):
        content = OFX_SGML.replace("<TRNAMT>-2500.00\n", "")
        with pytest.raises(StatementParseException) as exc_info:
            parse_statement(content.encode(), file_name="statement.ofx")

        assert exc_info.value.row_number == 1

    def test_no_transactions(self):
        content = "OFXHEADER:100\n<OFX><BANKTRANLIST></BANKTRANLIST></OFX>"
        with pytest.raises(StatementParseException):
            parse_statement(content.encode(), file_name="statement.ofx")
