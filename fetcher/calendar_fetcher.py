"""Fetch collaborator: downloads parsed event feeds for registered sources."""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

import requests
from requests.auth import HTTPBasicAuth, HTTPDigestAuth

from processor.models import CalendarEvent
from processor.time_utils import ONE_DAY

logger = logging.getLogger(__name__)

EVENTS_DELIVERED = 'EVENTS_DELIVERED'
FETCH_ERROR = 'FETCH_ERROR'
INCORRECT_URL = 'INCORRECT_URL'


@dataclass
class Registration:
    """Fetch settings for one registered source."""
    id: str
    fetch_interval: int
    maximum_entries: int
    maximum_number_of_days: int
    excluded_events: List[str]
    broadcast_past_events: bool = False
    auth: Optional[Dict[str, Any]] = None
    last_fetch: Optional[int] = None

    def is_due(self, now: int) -> bool:
        return self.last_fetch is None or now - self.last_fetch >= self.fetch_interval


class CalendarFetcher:
    """Fetches event feeds over HTTP and reports back through ``notify``."""

    def __init__(self, notify: Callable[[str, Dict[str, Any]], None], timeout: int = 30):
        """
        Initialize the fetcher.

        Args:
            notify: Callback receiving (notification, payload)
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.notify = notify
        self.timeout = timeout
        self.registrations: Dict[str, Registration] = {}

    def register(self, payload: Dict[str, Any]) -> Optional[Registration]:
        """
        Handle a REGISTER_SOURCE request.

        Registering an already known source refreshes its settings without
        resetting its fetch schedule.

        Args:
            payload: REGISTER_SOURCE payload

        Returns:
            The registration, or None if the url was rejected
        """
        source_id = payload.get('id', '')
        if not self._valid_url(source_id):
            logger.warning(f"Rejecting calendar with incorrect url: {source_id}")
            self.notify(INCORRECT_URL, {'id': source_id})
            return None

        existing = self.registrations.get(source_id)
        registration = Registration(
            id=source_id,
            fetch_interval=int(payload.get('fetchInterval') or 60 * 1000),
            maximum_entries=int(payload.get('maximumEntries') or 10),
            maximum_number_of_days=int(payload.get('maximumNumberOfDays') or 365),
            excluded_events=list(payload.get('excludedEvents') or []),
            broadcast_past_events=bool(payload.get('broadcastPastEvents')),
            auth=payload.get('auth'),
            last_fetch=existing.last_fetch if existing else None
        )
        self.registrations[source_id] = registration

        if existing:
            logger.debug(f"Refreshed registration for {source_id}")
        else:
            logger.info(f"Registered calendar {source_id}")
        return registration

    def poll(self, now: int) -> int:
        """
        Fetch every registration whose interval has elapsed.

        Args:
            now: Current time in epoch milliseconds

        Returns:
            Number of sources fetched (successfully or not)
        """
        fetched = 0
        for registration in list(self.registrations.values()):
            if not registration.is_due(now):
                continue
            fetched += 1
            registration.last_fetch = now
            try:
                events = self.fetch_events(registration, now)
            except (requests.RequestException, ValueError) as e:
                logger.error(
                    f"Failed to fetch calendar {registration.id}: {e}",
                    exc_info=True,
                    extra={'calendar_id': registration.id}
                )
                self.notify(FETCH_ERROR, {'id': registration.id})
                continue

            self.notify(EVENTS_DELIVERED, {
                'id': registration.id,
                'events': [event.to_dict() for event in events]
            })
        return fetched

    def fetch_events(self, registration: Registration, now: int) -> List[CalendarEvent]:
        """
        Download and filter the event feed of one source.

        Args:
            registration: Source to fetch
            now: Current time in epoch milliseconds

        Returns:
            Events sorted by start date, limited to the registration's policy

        Raises:
            requests.RequestException: If all retry attempts fail
            ValueError: If the response is not a JSON event list
        """
        logger.info(f"Fetching events for {registration.id}")
        response = self._fetch_feed(registration)
        try:
            feed = response.json()
        except ValueError as e:
            raise ValueError(f"Calendar feed {registration.id} is not valid JSON: {e}") from e

        if isinstance(feed, dict):
            feed = feed.get('events')
        if not isinstance(feed, list):
            raise ValueError(f"Calendar feed {registration.id} is not an event list")

        events = []
        for item in feed:
            try:
                events.append(CalendarEvent.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Failed to parse event from {registration.id}: {e}")
                continue

        events = self._apply_policies(events, registration, now)
        logger.info(f"Successfully fetched {len(events)} events from {registration.id}")
        return events

    def _fetch_feed(self, registration: Registration) -> requests.Response:
        """
        GET the feed with retry logic.

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        max_retries = 3
        base_delay = 1  # seconds
        request_args = self._auth_arguments(registration.auth)

        for attempt in range(max_retries):
            try:
                logger.info(f"Fetching calendar feed (attempt {attempt + 1}/{max_retries})")
                response = requests.get(
                    registration.id,
                    timeout=self.timeout,
                    **request_args
                )
                response.raise_for_status()
                return response

            except requests.RequestException as e:
                if attempt < max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    def _auth_arguments(self, auth: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not auth:
            return {}
        method = auth.get('method', 'basic')
        if method == 'bearer':
            return {'headers': {'Authorization': f"Bearer {auth.get('pass')}"}}
        if method == 'digest':
            return {'auth': HTTPDigestAuth(auth.get('user'), auth.get('pass'))}
        return {'auth': HTTPBasicAuth(auth.get('user'), auth.get('pass'))}

    def _apply_policies(
        self,
        events: List[CalendarEvent],
        registration: Registration,
        now: int
    ) -> List[CalendarEvent]:
        future = now + registration.maximum_number_of_days * ONE_DAY
        excluded = [term.lower() for term in registration.excluded_events]

        kept = []
        for event in events:
            title = event.title.lower() if isinstance(event.title, str) else ''
            if any(term in title for term in excluded):
                logger.debug(f"Excluding event '{event.title}'")
                continue
            if event.end_date < now and not registration.broadcast_past_events:
                continue
            if event.start_date > future:
                continue
            kept.append(event)

        kept.sort(key=lambda e: e.start_date)
        return kept[:registration.maximum_entries]

    @staticmethod
    def _valid_url(url: str) -> bool:
        parsed = urlparse(url or '')
        return parsed.scheme in ('http', 'https') and bool(parsed.netloc)
