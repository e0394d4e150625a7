"""Calendar display instance: source registration, notifications and display rows."""
import logging
from typing import Any, Callable, Dict, List, Optional

from processor.config import CalendarConfig
from processor.event_list_builder import EventListBuilder
from processor.models import CalendarEvent, DisplayRow, EventSource
from processor.relative_time import DisplayLocale, RelativeTimeLabeler, Translator
from processor.time_utils import now_millis
from processor.title_transformer import TitleTransformer
from storage.event_store import EventStore

logger = logging.getLogger(__name__)

REGISTER_SOURCE = 'REGISTER_SOURCE'
EVENTS_DELIVERED = 'EVENTS_DELIVERED'
FETCH_ERROR = 'FETCH_ERROR'
INCORRECT_URL = 'INCORRECT_URL'
CALENDAR_EVENTS = 'CALENDAR_EVENTS'

Notifier = Callable[[str, Dict[str, Any]], None]


class CalendarModule:
    """One configured calendar display instance."""

    def __init__(
        self,
        config: CalendarConfig,
        send_socket_notification: Notifier,
        send_notification: Optional[Callable[[str, Any], None]] = None,
        on_update: Optional[Callable[[List[DisplayRow]], None]] = None,
        store: Optional[EventStore] = None,
        builder: Optional[EventListBuilder] = None,
        translator: Optional[Translator] = None
    ):
        """
        Initialize the calendar instance.

        Args:
            config: Parsed module configuration
            send_socket_notification: Channel to the fetch collaborator
            send_notification: Broadcast channel to other display consumers
            on_update: Called with fresh display rows after every notification
            store: Event store (a new empty one by default)
            builder: Event list builder
            translator: Fixed phrase lookup (defaults to config.language)
        """
        self.config = config
        self.send_socket_notification = send_socket_notification
        self.send_notification = send_notification
        self.on_update = on_update
        self.store = store if store is not None else EventStore()
        self.builder = builder or EventListBuilder()
        self.locale = DisplayLocale(
            language=config.language,
            timezone=config.builder.timezone,
            clock=config.clock
        )
        self.translator = translator or Translator(config.language)
        self.labeler = RelativeTimeLabeler(self.translator, self.locale)
        self.title_transformer = TitleTransformer()
        self.loaded = False
        self._next_registration: Dict[str, int] = {}

    def start(self, now: int) -> None:
        """Register every configured source with the fetch collaborator."""
        logger.info(f"Starting calendar module with {len(self.config.sources)} sources")
        for source in self.config.sources.values():
            self.add_calendar(source, now)

    def tick(self, now: int) -> int:
        """
        Re-register sources whose fetch interval has elapsed.

        Returns:
            Number of registrations re-sent
        """
        resent = 0
        for source in self.config.sources.values():
            due = self._next_registration.get(source.id)
            if due is None or now >= due:
                self.add_calendar(source, now)
                resent += 1
        return resent

    def add_calendar(self, source: EventSource, now: int) -> None:
        self.send_socket_notification(REGISTER_SOURCE, self.registration_payload(source))
        self._next_registration[source.id] = now + self.config.fetch_interval

    def registration_payload(self, source: EventSource) -> Dict[str, Any]:
        """REGISTER_SOURCE payload, per-source policies falling back to instance ones."""
        def fallback(value, default):
            return default if value is None else value

        return {
            'id': source.id,
            'excludedEvents': fallback(source.excluded_events, self.config.excluded_events),
            'maximumEntries': fallback(source.maximum_entries, self.config.builder.maximum_entries),
            'maximumNumberOfDays': fallback(
                source.maximum_number_of_days, self.config.builder.maximum_number_of_days
            ),
            'fetchInterval': self.config.fetch_interval,
            'symbolClass': source.symbol_class,
            'titleClass': source.title_class,
            'timeClass': source.time_class,
            'auth': source.auth.to_dict() if source.auth else None,
            'broadcastPastEvents': fallback(
                source.broadcast_past_events, self.config.broadcast_past_events
            ),
        }

    def socket_notification_received(self, notification: str, payload: Dict[str, Any]) -> None:
        """
        Handle a notification from the fetch collaborator.

        Args:
            notification: EVENTS_DELIVERED, FETCH_ERROR or INCORRECT_URL
            payload: Notification payload carrying at least ``id``
        """
        source_id = (payload or {}).get('id')

        if notification == EVENTS_DELIVERED:
            if self.config.has_source(source_id):
                events = self._parse_events(payload.get('events', []), source_id)
                self.store.put(source_id, events)
                self.loaded = True
                if self.config.broadcast_events:
                    self.broadcast_events()
            else:
                logger.warning(f"Ignoring events for unknown calendar {source_id}")
        elif notification == FETCH_ERROR:
            logger.error(
                f"Calendar Error. Could not fetch calendar: {source_id}",
                extra={'calendar_id': source_id}
            )
            self.loaded = True
        elif notification == INCORRECT_URL:
            logger.error(
                f"Calendar Error. Incorrect url: {source_id}",
                extra={'calendar_id': source_id}
            )
        else:
            logger.info(f"Calendar received an unknown socket notification: {notification}")

        self.update_dom()

    def _parse_events(self, raw_events: List[Any], source_id: str) -> List[CalendarEvent]:
        events = []
        for raw_event in raw_events:
            if isinstance(raw_event, CalendarEvent):
                events.append(raw_event)
                continue
            try:
                events.append(CalendarEvent.from_dict(raw_event))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed event from {source_id}: {e}")
        return events

    def create_event_list(self, now: int) -> List[CalendarEvent]:
        return self.builder.build(self.store, self.config.builder, now)

    def broadcast_events(self) -> List[Dict[str, Any]]:
        """Send all stored events, decorated per source, to other consumers."""
        event_list = self.builder.build_broadcast(
            self.store,
            self.config.sources,
            default_source=self.config.source('')
        )
        if self.send_notification is not None:
            self.send_notification(CALENDAR_EVENTS, event_list)
        return event_list

    def update_dom(self) -> None:
        if self.on_update is not None:
            self.on_update(self.display_rows(now_millis(self.config.builder.timezone)))

    def status_text(self) -> str:
        """Placeholder text shown when there is nothing to list."""
        return self.translator.translate('EMPTY' if self.loaded else 'LOADING')

    def display_rows(self, now: int) -> List[DisplayRow]:
        """
        Structured display data for the current event list.

        Args:
            now: Current time in epoch milliseconds

        Returns:
            One DisplayRow per listed event, in list order
        """
        events = self.create_event_list(now)
        builder_config = self.config.builder
        date_headers = builder_config.time_format == 'dateheaders'

        fading = self.config.fade and builder_config.fade_point < 1
        start_fade = len(events) * max(builder_config.fade_point, 0)
        fade_steps = len(events) - start_fade

        rows = []
        last_seen_date = ''
        for index, event in enumerate(events):
            source = self.config.source(event.source_id)

            date_header = None
            if date_headers:
                date_string = self.locale.format(event.start_date, builder_config.date_format)
                if date_string != last_seen_date:
                    date_header = date_string
                    last_seen_date = date_string

            if date_headers:
                time_label = None if event.full_day_event else self.locale.format(event.start_date, 'LT')
            else:
                time_label = self.labeler.label(event, now, builder_config)

            opacity = 1.0
            if fading and index >= start_fade:
                opacity = 1 - (1 / fade_steps * (index - start_fade))

            rows.append(DisplayRow(
                title=self.display_title(event, source),
                time_label=time_label,
                symbols=source.symbols if self.config.display_symbol else [],
                symbol_class=source.symbol_class,
                title_class=source.title_class,
                time_class=source.time_class,
                color=source.color if self.config.colored else None,
                full_day_event=event.full_day_event,
                location=event.location if self.config.show_location else None,
                date_header=date_header,
                opacity=opacity
            ))
        return rows

    def display_title(self, event: CalendarEvent, source: EventSource) -> str:
        """Transformed title with the ", <n>. <countTitle>" suffix for recurring events."""
        builder_config = self.config.builder
        title = self.title_transformer.transform(
            event.title,
            builder_config.title_replace,
            builder_config.max_title_length,
            builder_config.wrap_events,
            builder_config.max_title_lines
        )

        if (
            self.config.display_repeating_count_title
            and event.first_year is not None
            and source.repeating_count_title
        ):
            year_diff = self.locale.to_datetime(event.start_date).year - event.first_year
            title += f", {year_diff}. {source.repeating_count_title}"
        return title
