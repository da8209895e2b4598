import threading
from dataclasses import dataclass, field
from decimal import Context, Decimal, DivisionByZero, Inexact, InvalidOperation, Overflow, localcontext
from enum import Enum
from typing import ClassVar

# Balances stay exact well past any realistic ledger; anything that would round traps.
MONEY_PRECISION = 60
MONEY_CONTEXT = Context(prec=MONEY_PRECISION, traps=[InvalidOperation, DivisionByZero, Overflow, Inexact])


class EventType(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DISPUTE = "dispute"
    RESOLVE = "resolve"
    CHARGEBACK = "chargeback"


class TransactionKind(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class DisputeStatus(Enum):
    NORMAL = "normal"
    DISPUTED = "disputed"
    CHARGED_BACK = "charged_back"


class ProcessingResult(Enum):
    SUCCESS = "success"
    DUPLICATE_TRANSACTION = "duplicate_transaction"
    ACCOUNT_LOCKED = "account_locked"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    TRANSACTION_NOT_FOUND = "transaction_not_found"
    CLIENT_MISMATCH = "client_mismatch"
    NOT_DISPUTABLE = "not_disputable"
    ALREADY_DISPUTED = "already_disputed"
    NOT_DISPUTED = "not_disputed"
    CHARGED_BACK = "charged_back"

    @property
    def is_success(self) -> bool:
        return self is ProcessingResult.SUCCESS


@dataclass(frozen=True)
class Event:
    """Base for all ledger events. Concrete events set ``event_type``."""

    event_type: ClassVar[EventType]

    client_id: int
    transaction_id: int

    def __repr__(self) -> str:
        return f"{type(self).__name__}(client={self.client_id}, tx={self.transaction_id})"


@dataclass(frozen=True)
class Deposit(Event):
    event_type: ClassVar[EventType] = EventType.DEPOSIT

    amount: Decimal

    def __repr__(self) -> str:
        return f"Deposit(client={self.client_id}, tx={self.transaction_id}, amount={self.amount})"


@dataclass(frozen=True)
class Withdrawal(Event):
    event_type: ClassVar[EventType] = EventType.WITHDRAWAL

    amount: Decimal

    def __repr__(self) -> str:
        return f"Withdrawal(client={self.client_id}, tx={self.transaction_id}, amount={self.amount})"


@dataclass(frozen=True, repr=False)
class Dispute(Event):
    event_type: ClassVar[EventType] = EventType.DISPUTE


@dataclass(frozen=True, repr=False)
class Resolve(Event):
    event_type: ClassVar[EventType] = EventType.RESOLVE


@dataclass(frozen=True, repr=False)
class Chargeback(Event):
    event_type: ClassVar[EventType] = EventType.CHARGEBACK


EVENT_CLASSES = {
    EventType.DEPOSIT: Deposit,
    EventType.WITHDRAWAL: Withdrawal,
    EventType.DISPUTE: Dispute,
    EventType.RESOLVE: Resolve,
    EventType.CHARGEBACK: Chargeback,
}


@dataclass(frozen=True)
class TransactionRecord:
    """A deposit or withdrawal kept for dispute lookups. Only ``status`` ever changes."""

    transaction_id: int
    client_id: int
    amount: Decimal
    kind: TransactionKind
    status: DisputeStatus = DisputeStatus.NORMAL


@dataclass
class ClientAccount:
    client_id: int
    available: Decimal = field(default_factory=lambda: Decimal("0"))
    held: Decimal = field(default_factory=lambda: Decimal("0"))
    locked: bool = False

    @property
    def total(self) -> Decimal:
        with localcontext(MONEY_CONTEXT):
            return self.available + self.held

    def apply_deltas(self, delta_available: Decimal, delta_held: Decimal) -> None:
        """
        Raises:
            decimal.Inexact: the new balance cannot be held exactly.
        """
        with localcontext(MONEY_CONTEXT):
            available = self.available + delta_available
            held = self.held + delta_held
        self.available = available
        self.held = held

    def snapshot(self) -> "ClientAccount":
        return ClientAccount(
            client_id=self.client_id,
            available=self.available,
            held=self.held,
            locked=self.locked,
        )


class ProcessingStats:
    """Counts applied and rejected events; safe to share between worker threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self.applied = 0
        self.rejected = 0

    def record(self, result: ProcessingResult) -> None:
        with self._lock:
            if result.is_success:
                self.applied += 1
            else:
                self.rejected += 1

    @property
    def total(self) -> int:
        return self.applied + self.rejected
