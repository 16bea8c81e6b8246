"""
YaadBooks Ledger - Bank Statement Parser

Turns an uploaded bank statement into normalized transactions.

Supported formats:
- CSV exports from NCB, Scotiabank Jamaica, JMMB and Sagicor, plus a
  generic layout resolved from the header row
- OFX / QFX (SGML v1 and XML v2)

The parser is a pure transformation: it never touches storage and it
either returns every transaction in the file or raises
StatementParseException. It never returns a partial result.

Sign convention: amounts are signed from the account holder's side,
deposits positive and withdrawals negative.
"""

import csv
import html
import io
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

from dateutil import parser as dateutil_parser

from app.models.banking import BankTransactionType
from app.utils.error_handling import StatementParseException

logger = logging.getLogger(__name__)


class DetectedFormat(str, Enum):
    """Statement format family, decided before any parsing is attempted."""
    CSV = "csv"
    OFX = "ofx"
    UNRECOGNIZED = "unrecognized"


@dataclass
class ParsedTransaction:
    """One normalized statement line."""
    date: date
    description: str
    amount: Decimal
    type: BankTransactionType
    reference: Optional[str] = None
    balance: Optional[Decimal] = None
    post_date: Optional[date] = None
    category: Optional[str] = None


@dataclass
class ParsedStatement:
    """Result of parsing a whole statement file."""
    format: DetectedFormat
    transactions: List[ParsedTransaction]
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    currency: Optional[str] = None
    layout: Optional[str] = None
    closing_balance: Optional[Decimal] = None

    @property
    def total_credits(self) -> Decimal:
        return sum((t.amount for t in self.transactions if t.amount > 0), Decimal("0.00"))

    @property
    def total_debits(self) -> Decimal:
        return sum((t.amount for t in self.transactions if t.amount < 0), Decimal("0.00"))


# ===========================================
# FORMAT DETECTION
# ===========================================

OFX_EXTENSIONS = (".ofx", ".qfx")
CSV_EXTENSIONS = (".csv", ".txt", ".tsv")
CSV_DELIMITERS = ",;\t|"
OFX_SIGNATURES = ("OFXHEADER", "<OFX>", "<?OFX")


def decode_statement(content: Union[bytes, str]) -> str:
    """Decode uploaded bytes. UTF-8 (with or without BOM) first, then Windows-1252."""
    if isinstance(content, str):
        return content.lstrip("\ufeff")
    if content.startswith((b"\xff\xfe", b"\xfe\xff")):
        return content.decode("utf-16")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("cp1252", errors="replace")


def _looks_binary(content: Union[bytes, str]) -> bool:
    sample = content[:1024]
    if isinstance(sample, bytes):
        if sample.startswith((b"\xff\xfe", b"\xfe\xff")):
            return False
        return b"\x00" in sample
    return "\x00" in sample


def detect_format(file_name: Optional[str], content: Union[bytes, str]) -> DetectedFormat:
    """
    Decide which parser a file should go to.

    OFX is checked first (extension, then content signature in the first
    500 characters) so an OFX file with a .txt name is never fed to the
    CSV parser.
    """
    name = (file_name or "").lower()
    if not content or _looks_binary(content):
        return DetectedFormat.UNRECOGNIZED

    text = decode_statement(content)
    if not text.strip():
        return DetectedFormat.UNRECOGNIZED

    if name.endswith(OFX_EXTENSIONS):
        return DetectedFormat.OFX
    head = text[:500].upper()
    if any(signature in head for signature in OFX_SIGNATURES):
        return DetectedFormat.OFX

    if name.endswith(CSV_EXTENSIONS):
        return DetectedFormat.CSV
    first_line = next((line for line in text.splitlines() if line.strip()), "")
    if any(delimiter in first_line for delimiter in CSV_DELIMITERS):
        return DetectedFormat.CSV

    return DetectedFormat.UNRECOGNIZED


# ===========================================
# VALUE PARSING
# ===========================================

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?|\.\d+")
_CURRENCY_RE = re.compile(r"JMD|USD|US\$|J\$|\$", re.IGNORECASE)
_CENT = Decimal("0.01")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%Y/%m/%d",
    "%d/%m/%y",
    "%d-%b-%Y",
    "%d-%b-%y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
)


def parse_amount(raw: Optional[str]) -> Optional[Decimal]:
    """
    Parse a statement amount.

    Accepts currency symbols (J$, $, JMD), thousands separators,
    parentheses and trailing minus for negatives, and DR/CR suffixes.
    Returns None for an empty cell; raises ValueError when the cell holds
    something that is not a number.
    """
    if raw is None:
        return None
    text = raw.strip()
    if text in ("", "-", "--"):
        return None

    text = _CURRENCY_RE.sub("", text)
    text = re.sub(r"[\s,]", "", text)

    negative = False
    upper = text.upper()
    if upper.endswith("DR"):
        negative = True
        text = text[:-2]
    elif upper.endswith("CR"):
        text = text[:-2]

    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]
    if text.endswith("-"):
        negative = True
        text = text[:-1]
    if text.startswith("+"):
        text = text[1:]
    elif text.startswith("-"):
        negative = True
        text = text[1:]

    if not _NUMBER_RE.fullmatch(text):
        raise ValueError(f"not a number: {raw!r}")

    try:
        value = Decimal(text).quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {raw!r}") from exc
    return -value if negative else value


def parse_statement_date(raw: Optional[str], dayfirst: bool = True) -> Optional[date]:
    """
    Parse a statement date. Day-first (DD/MM/YYYY) is the Jamaican
    default; dateutil handles anything the fixed formats miss, including
    month-first dates whose day is above 12.
    """
    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None

    formats = _DATE_FORMATS if dayfirst else ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y") + _DATE_FORMATS
    for fmt in formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    try:
        return dateutil_parser.parse(text, dayfirst=dayfirst).date()
    except (ValueError, OverflowError):
        return None


# ===========================================
# CSV LAYOUTS
# ===========================================

@dataclass
class ColumnMap:
    """Resolved column positions for one statement file."""
    date: int
    description: Optional[int] = None
    amount: Optional[int] = None
    debit: Optional[int] = None
    credit: Optional[int] = None
    balance: Optional[int] = None
    reference: Optional[int] = None
    post_date: Optional[int] = None
    direction: Optional[int] = None

    @property
    def has_amount(self) -> bool:
        return self.amount is not None or self.debit is not None or self.credit is not None

    @property
    def width(self) -> int:
        positions = [p for p in vars(self).values() if p is not None]
        return max(positions) + 1


@dataclass(frozen=True)
class BankCsvLayout:
    """
    Column layout of one bank's CSV export.

    Header names are compared after lower-casing and collapsing
    whitespace. ``signature`` lists headers that must all be present for
    the layout to be recognised from the header row alone.
    """
    key: str
    bank_name: str
    filename_hints: Tuple[str, ...]
    signature: Tuple[str, ...]
    date: Tuple[str, ...]
    description: Tuple[str, ...]
    amount: Tuple[str, ...] = ()
    debit: Tuple[str, ...] = ()
    credit: Tuple[str, ...] = ()
    balance: Tuple[str, ...] = ()
    reference: Tuple[str, ...] = ()
    post_date: Tuple[str, ...] = ()
    direction: Tuple[str, ...] = ()
    bank_keywords: Tuple[str, ...] = ()
    dayfirst: bool = True

    def matches_signature(self, headers: Sequence[str]) -> bool:
        return all(name in headers for name in self.signature)

    def resolve(self, headers: Sequence[str]) -> Optional[ColumnMap]:
        def find(names: Tuple[str, ...]) -> Optional[int]:
            for name in names:
                if name in headers:
                    return headers.index(name)
            return None

        date_idx = find(self.date)
        if date_idx is None:
            return None
        columns = ColumnMap(
            date=date_idx,
            description=find(self.description),
            amount=find(self.amount),
            debit=find(self.debit),
            credit=find(self.credit),
            balance=find(self.balance),
            reference=find(self.reference),
            post_date=find(self.post_date),
            direction=find(self.direction),
        )
        return columns if columns.has_amount else None


NCB_LAYOUT = BankCsvLayout(
    key="NCB",
    bank_name="National Commercial Bank Jamaica",
    filename_hints=("ncb", "national_commercial", "nationalcommercial"),
    signature=("posted date", "narrative"),
    date=("posted date", "transaction date"),
    post_date=("value date",),
    description=("narrative", "description"),
    reference=("reference", "cheque number"),
    debit=("debit",),
    credit=("credit",),
    balance=("balance",),
    bank_keywords=("ncb", "national commercial bank"),
)

SCOTIABANK_LAYOUT = BankCsvLayout(
    key="SCOTIABANK",
    bank_name="Scotiabank Jamaica",
    filename_hints=("scotia", "bns"),
    signature=("transaction details", "withdrawals", "deposits"),
    date=("transaction date", "date"),
    description=("transaction details", "description"),
    reference=("reference number", "reference"),
    debit=("withdrawals",),
    credit=("deposits",),
    balance=("balance", "running balance"),
    bank_keywords=("scotiabank", "scotia", "bank of nova scotia"),
)

JMMB_LAYOUT = BankCsvLayout(
    key="JMMB",
    bank_name="JMMB Bank",
    filename_hints=("jmmb",),
    signature=("trans date", "debit amount", "credit amount"),
    date=("trans date",),
    post_date=("value date",),
    description=("description", "details"),
    reference=("cheque no", "reference"),
    debit=("debit amount",),
    credit=("credit amount",),
    balance=("running balance", "balance"),
    bank_keywords=("jmmb",),
)

SAGICOR_LAYOUT = BankCsvLayout(
    key="SAGICOR",
    bank_name="Sagicor Bank Jamaica",
    filename_hints=("sagicor",),
    signature=("transaction description", "dr/cr"),
    date=("date", "transaction date"),
    description=("transaction description",),
    amount=("amount",),
    direction=("dr/cr",),
    reference=("reference no", "reference"),
    balance=("balance",),
    bank_keywords=("sagicor",),
)

BANK_LAYOUTS: Tuple[BankCsvLayout, ...] = (
    NCB_LAYOUT,
    SCOTIABANK_LAYOUT,
    JMMB_LAYOUT,
    SAGICOR_LAYOUT,
)


# ===========================================
# GENERIC COLUMN HEURISTICS
# ===========================================

_DATE_WORDS = {"date", "posted", "posting"}
_SECONDARY_DATE_WORDS = {"value", "effective"}
_DESCRIPTION_WORDS = {"description", "details", "narration", "narrative", "particulars", "memo", "payee", "remarks"}
_AMOUNT_HEADERS = {"amount", "value", "transaction amount", "amount (jmd)", "amount jmd", "net amount"}
_DEBIT_WORDS = {"debit", "debits", "withdrawal", "withdrawals", "dr", "out", "payments"}
_CREDIT_WORDS = {"credit", "credits", "deposit", "deposits", "cr", "in", "receipts"}
_BALANCE_WORDS = {"balance", "running"}
_REFERENCE_WORDS = {"reference", "ref", "cheque", "check", "chq", "fitid"}
_DIRECTION_HEADERS = {"dr/cr", "cr/dr", "debit/credit", "d/c", "c/d"}
_DEBIT_FLAGS = {"DR", "D", "DEBIT"}
_CREDIT_FLAGS = {"CR", "C", "CREDIT"}

_SUMMARY_LABELS = (
    "opening balance",
    "closing balance",
    "balance brought forward",
    "balance carried forward",
    "total",
    "totals",
)


def _normalize_header(value: str) -> str:
    return re.sub(r"\s+", " ", value.replace("\ufeff", "").strip().strip('"').lower())


def _header_words(header: str) -> set:
    return set(re.findall(r"[a-z]+", header))


def _resolve_generic_columns(headers: Sequence[str]) -> Optional[ColumnMap]:
    date_idx = post_idx = None
    description_idx = amount_idx = debit_idx = credit_idx = None
    balance_idx = reference_idx = direction_idx = None

    for idx, header in enumerate(headers):
        words = _header_words(header)
        if header in _DIRECTION_HEADERS:
            if direction_idx is None:
                direction_idx = idx
            continue
        if words & _BALANCE_WORDS:
            if balance_idx is None:
                balance_idx = idx
            continue
        if words & _DATE_WORDS or header.endswith("date"):
            if words & _SECONDARY_DATE_WORDS:
                post_idx = idx if post_idx is None else post_idx
            elif date_idx is None:
                date_idx = idx
            continue
        if header in _AMOUNT_HEADERS:
            amount_idx = idx if amount_idx is None else amount_idx
            continue
        if words & _DEBIT_WORDS and not words & _CREDIT_WORDS:
            debit_idx = idx if debit_idx is None else debit_idx
            continue
        if words & _CREDIT_WORDS and not words & _DEBIT_WORDS:
            credit_idx = idx if credit_idx is None else credit_idx
            continue
        if words & _DESCRIPTION_WORDS:
            description_idx = idx if description_idx is None else description_idx
            continue
        if words & _REFERENCE_WORDS:
            reference_idx = idx if reference_idx is None else reference_idx

    if date_idx is None and post_idx is not None:
        date_idx, post_idx = post_idx, None
    if date_idx is None:
        return None

    columns = ColumnMap(
        date=date_idx,
        description=description_idx,
        amount=amount_idx,
        debit=debit_idx,
        credit=credit_idx,
        balance=balance_idx,
        reference=reference_idx,
        post_date=post_idx,
        direction=direction_idx if amount_idx is not None else None,
    )
    return columns if columns.has_amount else None


# ===========================================
# CSV PARSING
# ===========================================

_ACCOUNT_NUMBER_RE = re.compile(
    r"(?:account|acct|a/c)\s*(?:no\.?|number|#)?\s*[:\-]?\s*([0-9Xx*][0-9Xx*\- ]{3,}[0-9])",
    re.IGNORECASE,
)
_CURRENCY_LINE_RE = re.compile(r"\bcurrency\s*[:\-]?\s*([A-Z]{3})\b", re.IGNORECASE)
_HEADER_SCAN_ROWS = 25


def _sniff_dialect(text: str) -> type:
    sample = "\n".join(text.splitlines()[:30])
    try:
        return csv.Sniffer().sniff(sample, delimiters=CSV_DELIMITERS)
    except csv.Error:
        counts = {d: sample.count(d) for d in CSV_DELIMITERS}
        delimiter = max(counts, key=counts.get) if any(counts.values()) else ","

        class _Fallback(csv.excel):
            pass

        _Fallback.delimiter = delimiter
        return _Fallback


def _bank_from_text(text: str) -> Optional[BankCsvLayout]:
    lowered = text.lower()
    for layout in BANK_LAYOUTS:
        for keyword in layout.bank_keywords:
            if re.search(rf"\b{re.escape(keyword)}\b", lowered):
                return layout
    return None


def _locate_header(
    rows: List[List[str]],
    file_name: str,
) -> Tuple[int, ColumnMap, Optional[BankCsvLayout], bool]:
    """
    Find the header row and resolve its columns.

    Returns (row index, columns, layout, layout_is_exact). Bank layouts
    are tried first, by filename hint then header signature; the generic
    heuristics are the fallback.
    """
    name = file_name.lower()
    hinted = [layout for layout in BANK_LAYOUTS if any(h in name for h in layout.filename_hints)]

    for idx, row in enumerate(rows[:_HEADER_SCAN_ROWS]):
        headers = [_normalize_header(cell) for cell in row]
        if sum(1 for h in headers if h) < 2:
            continue

        for layout in hinted:
            columns = layout.resolve(headers)
            if columns is not None:
                return idx, columns, layout, True

        for layout in BANK_LAYOUTS:
            if layout.matches_signature(headers):
                columns = layout.resolve(headers)
                if columns is not None:
                    return idx, columns, layout, True

        columns = _resolve_generic_columns(headers)
        if columns is not None:
            return idx, columns, None, False

    raise StatementParseException(
        "Could not find a header row with a Date column and an Amount, Debit or Credit column",
        detected_format=DetectedFormat.CSV.value,
    )


def _cell(row: List[str], idx: Optional[int]) -> str:
    if idx is None or idx >= len(row):
        return ""
    return row[idx].strip()


def _row_amount(row: List[str], columns: ColumnMap) -> Optional[Decimal]:
    if columns.amount is not None:
        amount = parse_amount(_cell(row, columns.amount))
        if amount is None:
            return None
        # Only an exact DR/CR token overrides the sign already in the amount
        flag = _cell(row, columns.direction).upper().rstrip(".")
        if flag in _DEBIT_FLAGS:
            return -abs(amount)
        if flag in _CREDIT_FLAGS:
            return abs(amount)
        return amount

    debit = parse_amount(_cell(row, columns.debit)) if columns.debit is not None else None
    credit = parse_amount(_cell(row, columns.credit)) if columns.credit is not None else None
    if debit is None and credit is None:
        return None
    return abs(credit or Decimal("0.00")) - abs(debit or Decimal("0.00"))


def parse_csv_statement(content: Union[bytes, str], file_name: str = "") -> ParsedStatement:
    """Parse a CSV statement export."""
    fmt = DetectedFormat.CSV.value
    text = decode_statement(content)
    if not text.strip():
        raise StatementParseException("Statement file is empty", detected_format=fmt)

    dialect = _sniff_dialect(text)
    try:
        rows = list(csv.reader(io.StringIO(text), dialect))
    except csv.Error as exc:
        raise StatementParseException(f"Malformed CSV: {exc}", detected_format=fmt) from exc

    header_idx, columns, layout, exact = _locate_header(rows, file_name)
    preamble_text = "\n".join(",".join(r) for r in rows[: header_idx + 1])
    dayfirst = layout.dayfirst if layout else True

    if layout is None:
        layout_by_name = _bank_from_text(preamble_text) or _bank_from_text(file_name.replace("_", " "))
    else:
        layout_by_name = layout

    transactions: List[ParsedTransaction] = []
    for offset, row in enumerate(rows[header_idx + 1:], start=header_idx + 2):
        if not any(cell.strip() for cell in row):
            continue

        raw_date = _cell(row, columns.date)
        description = _cell(row, columns.description)
        try:
            amount = _row_amount(row, columns)
        except ValueError:
            raise StatementParseException(
                f"Row {offset}: amount is not a number",
                detected_format=fmt,
                row_number=offset,
            )

        if not raw_date:
            if not amount:
                continue
            if description.lower().startswith(_SUMMARY_LABELS):
                continue
            raise StatementParseException(
                f"Row {offset}: transaction amount without a date",
                detected_format=fmt,
                row_number=offset,
            )

        txn_date = parse_statement_date(raw_date, dayfirst=dayfirst)
        if txn_date is None and raw_date.lower().startswith(_SUMMARY_LABELS):
            continue
        if txn_date is None:
            raise StatementParseException(
                f"Row {offset}: unrecognised date '{raw_date}'",
                detected_format=fmt,
                row_number=offset,
            )

        if not amount:
            continue

        try:
            balance = parse_amount(_cell(row, columns.balance))
        except ValueError:
            balance = None
        reference = _cell(row, columns.reference) or None
        post_date = parse_statement_date(_cell(row, columns.post_date), dayfirst=dayfirst)

        transactions.append(ParsedTransaction(
            date=txn_date,
            description=description or reference or "Bank transaction",
            amount=amount,
            type=BankTransactionType.DEBIT if amount < 0 else BankTransactionType.CREDIT,
            reference=reference,
            balance=balance,
            post_date=post_date,
        ))

    if not transactions:
        raise StatementParseException("No transactions found in statement", detected_format=fmt)

    account_match = _ACCOUNT_NUMBER_RE.search(preamble_text)
    currency_match = _CURRENCY_LINE_RE.search(preamble_text)

    logger.debug(
        f"Parsed {len(transactions)} CSV rows from {file_name or 'upload'} "
        f"(layout={layout.key if layout else 'GENERIC'}, exact={exact})"
    )
    return ParsedStatement(
        format=DetectedFormat.CSV,
        transactions=transactions,
        bank_name=layout_by_name.bank_name if layout_by_name else None,
        account_number=account_match.group(1).strip() if account_match else None,
        currency=currency_match.group(1).upper() if currency_match else None,
        layout=layout.key if layout else "GENERIC",
    )


# ===========================================
# OFX / QFX PARSING
# ===========================================

_STMTTRN_RE = re.compile(
    r"<STMTTRN>(.*?)(?:</STMTTRN>|(?=<STMTTRN>|</BANKTRANLIST>|</CCSTMTTRNLIST>))",
    re.IGNORECASE | re.DOTALL,
)
_OFX_DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})")


def _ofx_tag(block: str, tag: str) -> Optional[str]:
    match = re.search(rf"<{tag}>([^<\r\n]+)", block, re.IGNORECASE)
    if not match:
        return None
    value = html.unescape(match.group(1)).strip()
    return value or None


def _ofx_date(raw: Optional[str]) -> Optional[date]:
    if not raw:
        return None
    match = _OFX_DATE_RE.match(raw.strip())
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def parse_ofx_statement(content: Union[bytes, str], file_name: str = "") -> ParsedStatement:
    """Parse an OFX or QFX statement."""
    fmt = DetectedFormat.OFX.value
    text = decode_statement(content)

    blocks = _STMTTRN_RE.findall(text)
    if not blocks:
        raise StatementParseException("No <STMTTRN> transactions found in OFX file", detected_format=fmt)

    transactions: List[ParsedTransaction] = []
    for number, block in enumerate(blocks, start=1):
        raw_amount = _ofx_tag(block, "TRNAMT")
        if raw_amount is None:
            raise StatementParseException(
                f"Transaction {number}: missing <TRNAMT>",
                detected_format=fmt,
                row_number=number,
            )
        try:
            amount = parse_amount(raw_amount)
        except ValueError:
            raise StatementParseException(
                f"Transaction {number}: <TRNAMT> '{raw_amount}' is not a number",
                detected_format=fmt,
                row_number=number,
            )

        raw_posted = _ofx_tag(block, "DTPOSTED") or _ofx_tag(block, "DTUSER")
        if raw_posted is None:
            raise StatementParseException(
                f"Transaction {number}: missing <DTPOSTED>",
                detected_format=fmt,
                row_number=number,
            )
        txn_date = _ofx_date(raw_posted)
        if txn_date is None:
            raise StatementParseException(
                f"Transaction {number}: unrecognised date '{raw_posted}'",
                detected_format=fmt,
                row_number=number,
            )

        if not amount:
            continue

        name = _ofx_tag(block, "NAME")
        memo = _ofx_tag(block, "MEMO")
        if name and memo and memo != name:
            description = f"{name} - {memo}"
        else:
            description = name or memo or _ofx_tag(block, "TRNTYPE") or "Bank transaction"

        reference = _ofx_tag(block, "FITID") or _ofx_tag(block, "CHECKNUM") or _ofx_tag(block, "REFNUM")

        transactions.append(ParsedTransaction(
            date=txn_date,
            description=description,
            amount=amount,
            type=BankTransactionType.DEBIT if amount < 0 else BankTransactionType.CREDIT,
            reference=reference,
            post_date=_ofx_date(_ofx_tag(block, "DTUSER")),
            category=_ofx_tag(block, "TRNTYPE"),
        ))

    if not transactions:
        raise StatementParseException("No transactions found in statement", detected_format=fmt)

    transactions.sort(key=lambda t: t.date)

    closing_balance = None
    ledger_block = re.search(r"<LEDGERBAL>(.*?)(?:</LEDGERBAL>|<AVAILBAL>|$)", text, re.IGNORECASE | re.DOTALL)
    if ledger_block:
        try:
            closing_balance = parse_amount(_ofx_tag(ledger_block.group(1), "BALAMT"))
        except ValueError:
            closing_balance = None

    org = _ofx_tag(text, "ORG")
    currency = _ofx_tag(text, "CURDEF")
    return ParsedStatement(
        format=DetectedFormat.OFX,
        transactions=transactions,
        bank_name=org,
        account_number=_ofx_tag(text, "ACCTID"),
        currency=currency.upper() if currency else None,
        layout="OFX",
        closing_balance=closing_balance,
    )


# ===========================================
# ENTRY POINT
# ===========================================

_PARSERS: Dict[DetectedFormat, object] = {
    DetectedFormat.CSV: parse_csv_statement,
    DetectedFormat.OFX: parse_ofx_statement,
}


def parse_statement(
    content: Union[bytes, str],
    file_name: str = "",
    declared_format: Optional[DetectedFormat] = None,
) -> ParsedStatement:
    """
    Detect the format (unless declared) and parse the whole file.

    Raises StatementParseException for unrecognised or corrupt input.
    """
    fmt = declared_format or detect_format(file_name, content)
    if fmt == DetectedFormat.UNRECOGNIZED:
        raise StatementParseException(
            "Unrecognised statement format. Upload a CSV, OFX or QFX export.",
            detected_format=fmt.value,
        )
    parser = _PARSERS[fmt]
    return parser(content, file_name)
