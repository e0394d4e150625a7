"""Builds the bounded, sorted event list shown by a calendar instance."""
import logging
import math
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional

from processor.models import BuilderConfig, CalendarEvent, EventSource, Visibility
from processor.time_utils import ONE_DAY, add_days, end_of_day, start_of_day
from storage.event_store import EventStore

logger = logging.getLogger(__name__)


class EventListBuilder:
    """Filters, de-duplicates, slices and orders stored events."""

    def build(self, store: EventStore, config: BuilderConfig, now: int) -> List[CalendarEvent]:
        """
        Create the display list from the current store contents.

        Stored events are never modified; every returned event is a copy
        stamped with ``source_id`` and ``today``.

        Args:
            store: Latest batch per source
            config: Instance policy
            now: Current time in epoch milliseconds

        Returns:
            At most ``config.maximum_entries`` events ordered by start date
        """
        if config.maximum_number_of_days <= 0:
            logger.debug("maximumNumberOfDays <= 0, nothing to show")
            return []

        tz = config.timezone
        today = start_of_day(now, tz)
        future = add_days(today, config.maximum_number_of_days, tz)

        events: List[CalendarEvent] = []
        for source_id, batch in store.snapshot().items():
            for raw_event in batch:
                event = replace(raw_event)

                if event.end_date < now:
                    continue
                if config.hide_private and event.visibility_class == Visibility.PRIVATE:
                    continue
                if config.hide_ongoing and event.start_date < now:
                    continue
                if self.list_contains_event(events, event):
                    continue

                event.source_id = source_id
                event.today = self._is_today(event.start_date, today)

                if config.slice_multi_day_events and self.fragment_count(event, tz) > 1:
                    for fragment in self.slice_event(event, today, tz):
                        if now < fragment.end_date <= future:
                            events.append(fragment)
                else:
                    events.append(event)

        # list.sort is stable, ties keep insertion order
        events.sort(key=lambda e: e.start_date)
        logger.debug(
            f"Built event list: {len(events)} candidates, "
            f"keeping {min(len(events), config.maximum_entries)}"
        )
        return events[:config.maximum_entries]

    @staticmethod
    def list_contains_event(events: List[CalendarEvent], event: CalendarEvent) -> bool:
        """True if an event with the same title and start is already listed."""
        start = int(event.start_date)
        return any(
            listed.title == event.title and int(listed.start_date) == start
            for listed in events
        )

    @staticmethod
    def fragment_count(event: CalendarEvent, tz=None) -> int:
        """Number of calendar days touched by ``event``."""
        span = (event.end_date - 1) - end_of_day(event.start_date, tz)
        return math.ceil(span / ONE_DAY) + 1

    def slice_event(self, event: CalendarEvent, today: int, tz=None) -> List[CalendarEvent]:
        """
        Split a multi-day event at local midnights.

        Fragments are titled ``"<title> (k/n)"``; the last one keeps the
        original end date.
        """
        total = self.fragment_count(event, tz)
        fragments = []
        start = event.start_date
        midnight = add_days(start_of_day(start, tz), 1, tz)
        count = 1

        while event.end_date > midnight:
            fragments.append(replace(
                event,
                start_date=start,
                end_date=midnight,
                title=f"{event.title} ({count}/{total})",
                today=self._is_today(start, today)
            ))
            start = midnight
            count += 1
            midnight = add_days(midnight, 1, tz)

        fragments.append(replace(
            event,
            start_date=start,
            title=f"{event.title} ({count}/{total})",
            today=self._is_today(start, today)
        ))
        return fragments

    @staticmethod
    def _is_today(start_date: int, today: int) -> bool:
        return today <= start_date < today + ONE_DAY

    def build_broadcast(
        self,
        store: EventStore,
        sources: Mapping[str, EventSource],
        default_source: Optional[EventSource] = None
    ) -> List[Dict[str, Any]]:
        """
        Flatten every stored event for other display consumers.

        No window filtering is applied. Each event is decorated with its
        source's symbol, calendar name and color; ``sourceId`` is dropped.
        """
        default_source = default_source or EventSource(id='')
        event_list = []
        for source_id, batch in store.snapshot().items():
            source = sources.get(source_id, default_source)
            for event in batch:
                data = event.to_dict()
                data.pop('sourceId', None)
                data.pop('today', None)
                data['symbol'] = source.symbol
                data['calendarName'] = source.calendar_name
                data['color'] = source.color
                event_list.append(data)

        event_list.sort(key=lambda e: e['startDate'])
        return event_list
