import contextlib
import dataclasses
import threading
from abc import ABC, abstractmethod
from decimal import Decimal, Inexact
from typing import ContextManager, Dict, List, Optional

from models import ClientAccount, DisputeStatus, TransactionKind, TransactionRecord


class StoreError(Exception):
    """Storage could not satisfy a request."""


class DuplicateTransactionError(StoreError):
    def __init__(self, transaction_id: int):
        super().__init__(f"Transaction {transaction_id} has already been recorded")
        self.transaction_id = transaction_id


class LedgerStore(ABC):
    """
    Storage contract for client accounts and transaction history.

    The processor validates every transition before calling a mutating method;
    implementations only store and retrieve. Balance mutations must be atomic
    per client, nothing more.
    """

    @abstractmethod
    def get_or_create_account(self, client_id: int) -> ClientAccount:
        """Return the account for ``client_id``, creating a zeroed one if unseen."""

    @abstractmethod
    def lookup_account(self, client_id: int) -> Optional[ClientAccount]:
        """Return the account for ``client_id`` without creating it."""

    @abstractmethod
    def record_transaction(
        self,
        transaction_id: int,
        client_id: int,
        amount: Decimal,
        kind: TransactionKind,
    ) -> TransactionRecord:
        """
        Insert a new transaction in NORMAL status.

        Raises:
            DuplicateTransactionError: ``transaction_id`` is already in the ledger.
        """

    @abstractmethod
    def lookup_transaction(self, transaction_id: int) -> Optional[TransactionRecord]:
        pass

    @abstractmethod
    def set_dispute_status(self, transaction_id: int, status: DisputeStatus) -> None:
        pass

    @abstractmethod
    def mutate_balances(self, client_id: int, delta_available: Decimal, delta_held: Decimal) -> None:
        pass

    @abstractmethod
    def lock_account(self, client_id: int) -> None:
        pass

    @abstractmethod
    def all_accounts(self) -> List[ClientAccount]:
        """Return snapshots of every account (for final output)."""

    def client_lock(self, client_id: int) -> ContextManager:
        """Exclusive access to one client's state. No-op unless overridden."""
        return contextlib.nullcontext()


class InMemoryStore(LedgerStore):
    """
    Dict-backed ledger store. Single-writer only: no internal locking.
    """

    def __init__(self):
        self._accounts: Dict[int, ClientAccount] = {}
        self._transactions: Dict[int, TransactionRecord] = {}

    def get_or_create_account(self, client_id: int) -> ClientAccount:
        if client_id not in self._accounts:
            self._accounts[client_id] = ClientAccount(client_id=client_id)
        return self._accounts[client_id]

    def lookup_account(self, client_id: int) -> Optional[ClientAccount]:
        return self._accounts.get(client_id)

    def record_transaction(
        self,
        transaction_id: int,
        client_id: int,
        amount: Decimal,
        kind: TransactionKind,
    ) -> TransactionRecord:
        if transaction_id in self._transactions:
            raise DuplicateTransactionError(transaction_id)
        record = TransactionRecord(
            transaction_id=transaction_id,
            client_id=client_id,
            amount=amount,
            kind=kind,
        )
        self._transactions[transaction_id] = record
        return record

    def lookup_transaction(self, transaction_id: int) -> Optional[TransactionRecord]:
        return self._transactions.get(transaction_id)

    def set_dispute_status(self, transaction_id: int, status: DisputeStatus) -> None:
        record = self._transactions.get(transaction_id)
        if record is None:
            raise StoreError(f"Transaction {transaction_id} does not exist")
        self._transactions[transaction_id] = dataclasses.replace(record, status=status)

    def mutate_balances(self, client_id: int, delta_available: Decimal, delta_held: Decimal) -> None:
        _apply_deltas(self.get_or_create_account(client_id), delta_available, delta_held)

    def lock_account(self, client_id: int) -> None:
        self.get_or_create_account(client_id).locked = True

    def all_accounts(self) -> List[ClientAccount]:
        return [account.snapshot() for account in self._accounts.values()]


class ThreadSafeStore(InMemoryStore):
    """
    In-memory store safe for one writer per client.
    Stores client accounts and transaction history behind per-client locks.
    """

    def __init__(self):
        super().__init__()
        # Global lock guards inserts into the shared dicts; transaction ids are
        # unique across clients so the duplicate check must be global too.
        self._global_lock = threading.Lock()
        self._client_locks: Dict[int, threading.RLock] = {}

    def client_lock(self, client_id: int) -> threading.RLock:
        """
        Get or create a lock for a specific client.
        Workers acquire this before processing any event for that client.
        """
        with self._global_lock:
            if client_id not in self._client_locks:
                self._client_locks[client_id] = threading.RLock()
            return self._client_locks[client_id]

    def get_or_create_account(self, client_id: int) -> ClientAccount:
        with self._global_lock:
            return super().get_or_create_account(client_id)

    def lookup_account(self, client_id: int) -> Optional[ClientAccount]:
        with self._global_lock:
            return super().lookup_account(client_id)

    def record_transaction(
        self,
        transaction_id: int,
        client_id: int,
        amount: Decimal,
        kind: TransactionKind,
    ) -> TransactionRecord:
        with self._global_lock:
            return super().record_transaction(transaction_id, client_id, amount, kind)

    def lookup_transaction(self, transaction_id: int) -> Optional[TransactionRecord]:
        with self._global_lock:
            return super().lookup_transaction(transaction_id)

    def set_dispute_status(self, transaction_id: int, status: DisputeStatus) -> None:
        with self._global_lock:
            super().set_dispute_status(transaction_id, status)

    def mutate_balances(self, client_id: int, delta_available: Decimal, delta_held: Decimal) -> None:
        with self.client_lock(client_id):
            _apply_deltas(self.get_or_create_account(client_id), delta_available, delta_held)

    def lock_account(self, client_id: int) -> None:
        with self.client_lock(client_id):
            self.get_or_create_account(client_id).locked = True

    def all_accounts(self) -> List[ClientAccount]:
        with self._global_lock:
            accounts = list(self._accounts.values())
        snapshots = []
        for account in accounts:
            with self.client_lock(account.client_id):
                snapshots.append(account.snapshot())
        return snapshots


def _apply_deltas(account: ClientAccount, delta_available: Decimal, delta_held: Decimal) -> None:
    try:
        account.apply_deltas(delta_available, delta_held)
    except Inexact as e:
        raise StoreError(f"Balance of client {account.client_id} exceeds representable precision") from e
