import csv
import logging
from decimal import Decimal, ROUND_HALF_EVEN, localcontext
from typing import Dict, Iterable, Iterator, Optional, TextIO

from models import EVENT_CLASSES, MONEY_PRECISION, ClientAccount, Deposit, Event, EventType, Withdrawal

logger = logging.getLogger(__name__)

MAX_CLIENT_ID = 2**16 - 1
MAX_TRANSACTION_ID = 2**32 - 1
AMOUNT_PRECISION = Decimal("0.0001")
MAX_AMOUNT = Decimal("1000000000000000")
OUTPUT_FIELDS = ("client", "available", "held", "total", "locked")


def read_events(filepath: str) -> Iterator[Event]:
    """
    Read CSV file and yield events in file order.

    Malformed rows are logged and skipped. I/O errors (missing file, broken
    CSV framing, bytes that are not UTF-8) propagate to the caller.
    """
    with open(filepath, "r", encoding="utf-8", newline="") as f:
        yield from parse_rows(csv.DictReader(f))


def parse_rows(rows: Iterable[Dict[str, str]]) -> Iterator[Event]:
    for row in rows:
        event = parse_csv_row(row)
        if event is not None:
            yield event


def parse_csv_row(row: Dict[str, str]) -> Optional[Event]:
    """Parse CSV row into Event. Returns None for a malformed row."""
    try:
        # Short rows leave trailing cells as None; overlong rows collect extras under a None key.
        normalized = {k.strip(): (v or "").strip() for k, v in row.items() if k is not None}

        event_type = EventType(normalized["type"].lower())
        client_id = _parse_id(normalized["client"], MAX_CLIENT_ID, "client")
        transaction_id = _parse_id(normalized["tx"], MAX_TRANSACTION_ID, "tx")

        event_class = EVENT_CLASSES[event_type]
        if event_class in (Deposit, Withdrawal):
            amount = _parse_amount(normalized.get("amount", ""))
            return event_class(client_id=client_id, transaction_id=transaction_id, amount=amount)
        return event_class(client_id=client_id, transaction_id=transaction_id)
    except (KeyError, ValueError, ArithmeticError) as e:
        logger.warning(f"Failed to parse row {row}: {e}")
        return None


def _parse_id(value: str, upper_bound: int, name: str) -> int:
    parsed = int(value)
    if not 0 <= parsed <= upper_bound:
        raise ValueError(f"{name} id {parsed} out of range 0..{upper_bound}")
    return parsed


def _parse_amount(value: str) -> Decimal:
    if not value:
        raise ValueError("amount is required")
    # decimal.InvalidOperation is an ArithmeticError
    amount = Decimal(value)
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"amount must be a non-negative number, got {value}")
    if amount > MAX_AMOUNT:
        raise ValueError(f"amount {value} exceeds the maximum of {MAX_AMOUNT}")
    if amount != amount.quantize(AMOUNT_PRECISION):
        raise ValueError(f"amount {value} has more than 4 decimal places")
    return amount


def format_decimal(value: Decimal) -> str:
    """Format decimal with up to 4 decimal places, removing trailing zeros."""
    with localcontext() as ctx:
        # room for every integer digit of a balance plus the 4 decimal places
        ctx.prec = MONEY_PRECISION + 4
        normalized = value.quantize(AMOUNT_PRECISION, rounding=ROUND_HALF_EVEN).normalize()
    # normalize() keeps the sign of -0
    if normalized.is_zero():
        return "0"
    return f"{normalized:f}"


def write_accounts(accounts: Iterable[ClientAccount], stream: TextIO) -> None:
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(OUTPUT_FIELDS)
    for account in accounts:
        writer.writerow([
            account.client_id,
            format_decimal(account.available),
            format_decimal(account.held),
            format_decimal(account.total),
            str(account.locked).lower(),
        ])
