import csv
import logging
import threading
from typing import Dict, Iterable, List, Optional

from csv_io import read_events
from message_queue import PartitionQueue, create_partitions, partition_for
from models import ClientAccount, Event, ProcessingStats
from processor import ProcessorConfig, TransactionProcessor
from store import InMemoryStore, LedgerStore, StoreError, ThreadSafeStore

logger = logging.getLogger(__name__)


class RunnerError(Exception):
    """A run could not complete: input unreadable or store unavailable."""


class Runner:
    """
    Feeds events one at a time, in arrival order, to a processor bound to a
    single store. No business logic lives here.
    """

    def __init__(self, store: Optional[LedgerStore] = None, config: Optional[ProcessorConfig] = None):
        self._store = store if store is not None else InMemoryStore()
        self._processor = TransactionProcessor(self._store, config)
        self._stats = ProcessingStats()

    @property
    def stats(self) -> ProcessingStats:
        return self._stats

    def run(self, events: Iterable[Event]) -> List[ClientAccount]:
        """Apply every event, then return snapshots of all accounts."""
        try:
            for event in events:
                self._apply(event)
            accounts = self._store.all_accounts()
        except (OSError, csv.Error, UnicodeDecodeError, StoreError) as e:
            raise RunnerError(f"Processing aborted: {e}") from e

        self._log_summary()
        return accounts

    def process_file(self, filepath: str) -> Dict[int, ClientAccount]:
        """Process CSV file and return final account states keyed by client id."""
        accounts = self.run(read_events(filepath))
        return {account.client_id: account for account in accounts}

    def _apply(self, event: Event) -> None:
        with self._store.client_lock(event.client_id):
            result = self._processor.process_event(event)
        self._stats.record(result)

    def _log_summary(self) -> None:
        logger.info(f"Applied: {self._stats.applied}, Rejected: {self._stats.rejected}")


class PartitionedRunner(Runner):
    """
    Processes clients in parallel with a publisher-consumer pattern.

    Events are routed to a worker by client id, so each client's events are
    applied in arrival order while different clients proceed concurrently.
    """

    def __init__(
        self,
        num_workers: int = 4,
        store: Optional[LedgerStore] = None,
        config: Optional[ProcessorConfig] = None,
    ):
        if num_workers < 1:
            raise ValueError(f"num_workers must be at least 1, got {num_workers}")
        super().__init__(store if store is not None else ThreadSafeStore(), config)
        self._num_workers = num_workers
        self._partitions: List[PartitionQueue] = []
        self._publish_error: Optional[BaseException] = None
        self._worker_errors: List[BaseException] = []
        self._errors_lock = threading.Lock()

    def run(self, events: Iterable[Event]) -> List[ClientAccount]:
        logger.info(f"Starting partitioned processing with {self._num_workers} workers")
        self._partitions = create_partitions(self._num_workers)
        self._publish_error = None
        self._worker_errors = []

        publisher_thread = threading.Thread(target=self._publish_events, args=(events,))
        publisher_thread.start()

        worker_threads = []
        for partition in self._partitions:
            worker_thread = threading.Thread(target=self._consume_events, args=(partition,))
            worker_thread.start()
            worker_threads.append(worker_thread)

        publisher_thread.join()
        for worker_thread in worker_threads:
            worker_thread.join()

        failure = self._publish_error or (self._worker_errors[0] if self._worker_errors else None)
        if failure is not None:
            raise RunnerError(f"Processing aborted: {failure}") from failure

        try:
            accounts = self._store.all_accounts()
        except StoreError as e:
            raise RunnerError(f"Processing aborted: {e}") from e

        self._log_summary()
        return accounts

    def _publish_events(self, events: Iterable[Event]) -> None:
        """Route events to partitions; always releases the workers when done."""
        try:
            for event in events:
                if self._worker_errors:
                    break
                partition = self._partitions[partition_for(event.client_id, self._num_workers)]
                partition.publish_message(event)
        except Exception as e:
            # Raised again from run() once the workers are joined.
            logger.error(f"Reading events failed: {e}")
            self._publish_error = e
        finally:
            for partition in self._partitions:
                partition.shutdown()

    def _consume_events(self, partition: PartitionQueue) -> None:
        """Worker loop: pull from own partition and apply under the client lock."""
        while True:
            event = partition.consume_message()
            if event is None:
                if partition.is_drained() or self._publish_error is not None:
                    break
                continue

            try:
                self._apply(event)
            except Exception as e:
                # Any failure here ends the run; the ledger is incomplete.
                logger.error(f"Failed while applying {event!r}: {e}")
                with self._errors_lock:
                    self._worker_errors.append(e)
                break
