import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from models import (
    Chargeback,
    ClientAccount,
    Deposit,
    Dispute,
    DisputeStatus,
    Event,
    ProcessingResult,
    Resolve,
    TransactionKind,
    TransactionRecord,
    Withdrawal,
)
from store import DuplicateTransactionError, LedgerStore

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class ProcessorConfig:
    # Locked accounts always reject deposits and withdrawals; this extends the
    # block to dispute, resolve and chargeback.
    locked_account_blocks_disputes: bool = False
    allow_withdrawal_disputes: bool = False


class TransactionProcessor:
    """
    Applies events to a ledger store.

    Every precondition is checked before the store is touched, so a rejected
    event leaves the store unchanged (no account is created either). Rejections
    are returned as ProcessingResult members, never raised.
    Caller is responsible for holding the client lock when the store is shared.
    """

    def __init__(self, store: LedgerStore, config: Optional[ProcessorConfig] = None):
        self._store = store
        self._config = config or ProcessorConfig()

    @property
    def store(self) -> LedgerStore:
        return self._store

    def process_event(self, event: Event) -> ProcessingResult:
        """
        Process a single event.

        Returns:
            SUCCESS if the event was applied, otherwise the reason it was skipped.
        """
        match event:
            case Deposit():
                result = self._handle_deposit(event)
            case Withdrawal():
                result = self._handle_withdrawal(event)
            case Dispute():
                result = self._handle_dispute(event)
            case Resolve():
                result = self._handle_resolve(event)
            case Chargeback():
                result = self._handle_chargeback(event)
            case _:
                raise TypeError(f"Unsupported event: {event!r}")

        if not result.is_success:
            self._log_rejection(event, result)
        return result

    def _handle_deposit(self, event: Deposit) -> ProcessingResult:
        account = self._store.lookup_account(event.client_id)
        if account is not None and account.locked:
            return ProcessingResult.ACCOUNT_LOCKED

        if self._store.lookup_transaction(event.transaction_id) is not None:
            return ProcessingResult.DUPLICATE_TRANSACTION

        return self._record_and_apply(event, TransactionKind.DEPOSIT, event.amount)

    def _handle_withdrawal(self, event: Withdrawal) -> ProcessingResult:
        account = self._store.lookup_account(event.client_id)
        if account is not None and account.locked:
            return ProcessingResult.ACCOUNT_LOCKED

        if self._store.lookup_transaction(event.transaction_id) is not None:
            return ProcessingResult.DUPLICATE_TRANSACTION

        available = account.available if account is not None else ZERO
        if available < event.amount:
            return ProcessingResult.INSUFFICIENT_FUNDS

        return self._record_and_apply(event, TransactionKind.WITHDRAWAL, event.amount.copy_negate())

    def _record_and_apply(self, event: Event, kind: TransactionKind, delta_available: Decimal) -> ProcessingResult:
        try:
            self._store.record_transaction(event.transaction_id, event.client_id, event.amount, kind)
        except DuplicateTransactionError:
            return ProcessingResult.DUPLICATE_TRANSACTION

        self._store.mutate_balances(event.client_id, delta_available, ZERO)
        return ProcessingResult.SUCCESS

    def _handle_dispute(self, event: Dispute) -> ProcessingResult:
        rejection, account, original = self._find_disputed_transaction(event)
        if rejection is not None:
            return rejection

        if original.status is DisputeStatus.DISPUTED:
            return ProcessingResult.ALREADY_DISPUTED
        if original.status is DisputeStatus.CHARGED_BACK:
            return ProcessingResult.CHARGED_BACK

        if original.kind is TransactionKind.WITHDRAWAL:
            if not self._config.allow_withdrawal_disputes:
                return ProcessingResult.NOT_DISPUTABLE
            # Withdrawn funds come back frozen; available is untouched.
            self._store.mutate_balances(event.client_id, ZERO, original.amount)
        else:
            if account.available < original.amount:
                return ProcessingResult.INSUFFICIENT_FUNDS
            self._store.mutate_balances(event.client_id, original.amount.copy_negate(), original.amount)

        self._store.set_dispute_status(event.transaction_id, DisputeStatus.DISPUTED)
        return ProcessingResult.SUCCESS

    def _handle_resolve(self, event: Resolve) -> ProcessingResult:
        rejection, _, original = self._find_disputed_transaction(event)
        if rejection is not None:
            return rejection

        if original.status is not DisputeStatus.DISPUTED:
            return ProcessingResult.NOT_DISPUTED

        if original.kind is TransactionKind.WITHDRAWAL:
            self._store.mutate_balances(event.client_id, ZERO, original.amount.copy_negate())
        else:
            self._store.mutate_balances(event.client_id, original.amount, original.amount.copy_negate())

        self._store.set_dispute_status(event.transaction_id, DisputeStatus.NORMAL)
        return ProcessingResult.SUCCESS

    def _handle_chargeback(self, event: Chargeback) -> ProcessingResult:
        rejection, _, original = self._find_disputed_transaction(event)
        if rejection is not None:
            return rejection

        if original.status is not DisputeStatus.DISPUTED:
            return ProcessingResult.NOT_DISPUTED

        if original.kind is TransactionKind.WITHDRAWAL:
            self._store.mutate_balances(event.client_id, original.amount, original.amount.copy_negate())
        else:
            self._store.mutate_balances(event.client_id, ZERO, original.amount.copy_negate())

        self._store.set_dispute_status(event.transaction_id, DisputeStatus.CHARGED_BACK)
        self._store.lock_account(event.client_id)
        return ProcessingResult.SUCCESS

    def _find_disputed_transaction(
        self, event: Event
    ) -> Tuple[Optional[ProcessingResult], Optional[ClientAccount], Optional[TransactionRecord]]:
        """Shared lookup and ownership checks for dispute, resolve and chargeback."""
        original = self._store.lookup_transaction(event.transaction_id)
        if original is None:
            return ProcessingResult.TRANSACTION_NOT_FOUND, None, None

        if original.client_id != event.client_id:
            return ProcessingResult.CLIENT_MISMATCH, None, None

        account = self._store.lookup_account(event.client_id)
        if account is None:
            account = ClientAccount(client_id=event.client_id)
        if account.locked and self._config.locked_account_blocks_disputes:
            return ProcessingResult.ACCOUNT_LOCKED, None, None

        return None, account, original

    def _log_rejection(self, event: Event, result: ProcessingResult) -> None:
        message = f"{event.event_type.value.capitalize()} tx {event.transaction_id} for client {event.client_id} skipped: {result.value}"
        if result in (ProcessingResult.CLIENT_MISMATCH, ProcessingResult.DUPLICATE_TRANSACTION):
            logger.warning(message)
        else:
            logger.info(message)
