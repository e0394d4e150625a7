"""In-memory store of the latest event batch per calendar source."""
import logging
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Tuple

from processor.models import CalendarEvent

logger = logging.getLogger(__name__)


class EventStore:
    """Holds the most recently delivered batch for every source."""

    def __init__(self):
        self._batches: Dict[str, Tuple[CalendarEvent, ...]] = {}

    def put(self, source_id: str, events: Iterable[CalendarEvent]) -> None:
        """
        Replace the batch stored for ``source_id``.

        Args:
            source_id: Source identifier (its URL)
            events: Full batch; replaces, never merges with, the previous one
        """
        batch = tuple(events)
        previous = len(self._batches.get(source_id, ()))
        self._batches[source_id] = batch
        logger.info(
            f"Stored {len(batch)} events for {source_id} "
            f"(replacing {previous})"
        )

    def get(self, source_id: str) -> Tuple[CalendarEvent, ...]:
        return self._batches.get(source_id, ())

    def snapshot(self) -> Mapping[str, Tuple[CalendarEvent, ...]]:
        """Read-only view of all batches, in delivery order of first arrival."""
        return MappingProxyType(dict(self._batches))

    def source_ids(self) -> List[str]:
        return list(self._batches)

    def event_count(self) -> int:
        return sum(len(batch) for batch in self._batches.values())

    def clear(self) -> None:
        self._batches.clear()

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._batches

    def __len__(self) -> int:
        return len(self._batches)
