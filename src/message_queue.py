import threading
from queue import Queue, Empty
from typing import List, Optional

from models import Event


class PartitionQueue:
    """
    Thread-safe FIFO feeding one worker.
    All synchronization is internal - callers never need to lock.
    """

    DEFAULT_TIMEOUT = 0.1

    def __init__(self):
        self._queue: Queue[Event] = Queue()
        self._shutdown_event = threading.Event()

    def publish_message(self, message: Event) -> None:
        """Add message to the queue. Thread-safe."""
        self._queue.put(message)

    def consume_message(self) -> Optional[Event]:
        """
        Get next message from the queue.
        Returns None if queue is empty after timeout.
        Thread-safe.
        """
        try:
            return self._queue.get(timeout=self.DEFAULT_TIMEOUT)
        except Empty:
            return None

    def is_empty(self) -> bool:
        return self._queue.empty()

    def is_drained(self) -> bool:
        """True once shutdown is signaled and nothing is left to consume."""
        return self.is_shutdown() and self.is_empty()

    def shutdown(self) -> None:
        """Signal no more messages will be published."""
        self._shutdown_event.set()

    def is_shutdown(self) -> bool:
        return self._shutdown_event.is_set()


def partition_for(client_id: int, num_partitions: int) -> int:
    """Every event of a client lands on the same partition, preserving its order."""
    return client_id % num_partitions


def create_partitions(num_partitions: int) -> List[PartitionQueue]:
    if num_partitions < 1:
        raise ValueError(f"num_partitions must be at least 1, got {num_partitions}")
    return [PartitionQueue() for _ in range(num_partitions)]
