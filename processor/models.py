"""Data models for calendar event processing."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class Visibility(Enum):
    """iCal CLASS property of an event."""
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


@dataclass
class CalendarEvent:
    """Parsed event as delivered by the fetch collaborator.

    Times are epoch milliseconds. ``source_id`` and ``today`` are stamped
    by the list builder, never by the fetcher.
    """
    title: str
    start_date: int
    end_date: int
    full_day_event: bool = False
    location: Optional[str] = None
    visibility_class: Optional[Visibility] = None
    first_year: Optional[int] = None
    source_id: Optional[str] = None
    today: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CalendarEvent':
        """
        Build an event from its wire (camelCase) form.

        Args:
            data: Event mapping from a notification payload

        Returns:
            CalendarEvent

        Raises:
            KeyError: If title or dates are missing
            ValueError: If dates are not integers or start is after end
        """
        start_date = int(data['startDate'])
        end_date = int(data['endDate'])
        if start_date > end_date:
            raise ValueError(
                f"startDate {start_date} is after endDate {end_date}"
            )

        visibility = data.get('class')
        first_year = data.get('firstYear')

        return cls(
            title=data['title'],
            start_date=start_date,
            end_date=end_date,
            full_day_event=bool(data.get('fullDayEvent', False)),
            location=data.get('location') or None,
            visibility_class=Visibility.__members__.get(str(visibility).upper()) if visibility else None,
            first_year=int(first_year) if first_year is not None else None,
            source_id=data.get('sourceId'),
            today=bool(data.get('today', False))
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire (camelCase) form; absent optional fields are omitted."""
        data = {
            'title': self.title,
            'startDate': self.start_date,
            'endDate': self.end_date,
            'fullDayEvent': self.full_day_event,
            'today': self.today,
        }
        if self.location is not None:
            data['location'] = self.location
        if self.visibility_class is not None:
            data['class'] = self.visibility_class.value
        if self.first_year is not None:
            data['firstYear'] = self.first_year
        if self.source_id is not None:
            data['sourceId'] = self.source_id
        return data


@dataclass
class SourceAuth:
    """Credentials used when fetching a calendar source."""
    user: Optional[str] = None
    password: Optional[str] = None
    method: str = 'basic'

    def to_dict(self) -> Dict[str, Any]:
        return {'user': self.user, 'pass': self.password, 'method': self.method}


@dataclass
class EventSource:
    """Configured calendar source with its resolved overrides."""
    id: str
    auth: Optional[SourceAuth] = None
    symbol: Union[str, List[str]] = 'calendar'
    symbol_class: str = ''
    title_class: str = ''
    time_class: str = ''
    color: str = '#fff'
    calendar_name: str = ''
    repeating_count_title: str = ''
    maximum_entries: Optional[int] = None
    maximum_number_of_days: Optional[int] = None
    excluded_events: Optional[List[str]] = None
    broadcast_past_events: Optional[bool] = None

    @property
    def symbols(self) -> List[str]:
        if isinstance(self.symbol, str):
            return [self.symbol]
        return list(self.symbol)


@dataclass(frozen=True)
class LiteralRule:
    """Replace the first occurrence of ``text``."""
    text: str
    replacement: str


@dataclass(frozen=True)
class RegexRule:
    """Replace matches of ``/pattern/flags``."""
    pattern: str
    flags: str
    replacement: str


TitleRule = Union[LiteralRule, RegexRule]


@dataclass
class BuilderConfig:
    """Instance-wide list building and labelling policy."""
    maximum_entries: int = 3
    maximum_number_of_days: int = 365
    hide_private: bool = False
    hide_ongoing: bool = False
    slice_multi_day_events: bool = False
    fade_point: float = 0.25
    urgency: int = 7
    get_relative: int = 6
    time_format: str = 'relative'
    date_format: str = 'MMM Do'
    date_end_format: str = 'LT'
    full_day_event_date_format: str = 'MMM Do'
    show_end: bool = False
    next_days_relative: bool = False
    title_replace: List[TitleRule] = field(default_factory=list)
    max_title_length: int = 100
    wrap_events: bool = False
    max_title_lines: int = 3
    timezone: Optional[str] = None


@dataclass
class DisplayRow:
    """Structured display data for one listed event."""
    title: str
    time_label: Optional[str]
    symbols: List[str]
    symbol_class: str
    title_class: str
    time_class: str
    color: Optional[str]
    full_day_event: bool
    location: Optional[str] = None
    date_header: Optional[str] = None
    opacity: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'time': self.time_label,
            'symbols': self.symbols,
            'symbolClass': self.symbol_class,
            'titleClass': self.title_class,
            'timeClass': self.time_class,
            'color': self.color,
            'fullDayEvent': self.full_day_event,
            'location': self.location,
            'dateHeader': self.date_header,
            'opacity': round(self.opacity, 3),
        }
