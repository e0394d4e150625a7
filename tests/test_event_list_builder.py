"""Unit tests for EventListBuilder."""
import pendulum
import pytest

from processor.event_list_builder import EventListBuilder
from processor.models import BuilderConfig, CalendarEvent, EventSource, Visibility
from processor.time_utils import ONE_DAY, ONE_HOUR, to_millis
from storage.event_store import EventStore


def at(*args):
    """Epoch milliseconds for a UTC wall-clock time."""
    return to_millis(pendulum.datetime(*args, tz='UTC'))


NOW = at(2024, 1, 15, 9, 0)


def event(title, start, end, **kwargs):
    return CalendarEvent(title=title, start_date=start, end_date=end, **kwargs)


@pytest.fixture
def builder():
    return EventListBuilder()


@pytest.fixture
def config():
    return BuilderConfig(timezone='UTC', maximum_entries=10)


class TestEventListBuilder:
    """Test cases for EventListBuilder.build."""

    def test_empty_store(self, builder, config):
        """Test that an empty store yields an empty list."""
        assert builder.build(EventStore(), config, NOW) == []

    def test_non_positive_day_window(self, builder, config):
        store = EventStore()
        store.put('a', [event('Lunch', at(2024, 1, 15, 12), at(2024, 1, 15, 13))])
        config.maximum_number_of_days = 0

        assert builder.build(store, config, NOW) == []

    def test_bounded_by_maximum_entries(self, builder, config):
        store = EventStore()
        store.put('a', [
            event(f'Event {i}', at(2024, 1, 16 + i, 12), at(2024, 1, 16 + i, 13))
            for i in range(6)
        ])
        config.maximum_entries = 4

        result = builder.build(store, config, NOW)

        assert len(result) == 4
        assert [e.title for e in result] == ['Event 0', 'Event 1', 'Event 2', 'Event 3']

    def test_sorted_and_stable(self, builder, config):
        """Test ascending order, with ties kept in insertion order."""
        store = EventStore()
        store.put('a', [
            event('Late', at(2024, 1, 17, 12), at(2024, 1, 17, 13)),
            event('Tie first', at(2024, 1, 16, 12), at(2024, 1, 16, 13)),
        ])
        store.put('b', [
            event('Tie second', at(2024, 1, 16, 12), at(2024, 1, 16, 14)),
            event('Early', at(2024, 1, 15, 12), at(2024, 1, 15, 13)),
        ])

        result = builder.build(store, config, NOW)

        assert [e.title for e in result] == ['Early', 'Tie first', 'Tie second', 'Late']
        starts = [e.start_date for e in result]
        assert starts == sorted(starts)

    def test_drops_finished_events(self, builder, config):
        store = EventStore()
        store.put('a', [
            event('Breakfast', at(2024, 1, 15, 7), at(2024, 1, 15, 8)),
            event('Standup', at(2024, 1, 15, 8, 30), at(2024, 1, 15, 9, 30)),
        ])

        result = builder.build(store, config, NOW)

        assert [e.title for e in result] == ['Standup']
        assert all(e.end_date > NOW for e in result)

    def test_event_ending_exactly_now_is_kept(self, builder, config):
        """Test only events that ended strictly before now are dropped."""
        store = EventStore()
        store.put('a', [
            event('Early call', at(2024, 1, 15, 8), NOW),
            event('Too early', at(2024, 1, 15, 8), NOW - 1),
        ])

        result = builder.build(store, config, NOW)

        assert [e.title for e in result] == ['Early call']

    def test_hide_ongoing(self, builder, config):
        store = EventStore()
        store.put('a', [
            event('Standup', at(2024, 1, 15, 8, 30), at(2024, 1, 15, 9, 30)),
            event('Lunch', at(2024, 1, 15, 12), at(2024, 1, 15, 13)),
        ])
        config.hide_ongoing = True

        result = builder.build(store, config, NOW)

        assert [e.title for e in result] == ['Lunch']

    def test_hide_private(self, builder, config):
        store = EventStore()
        store.put('a', [
            event('Doctor', at(2024, 1, 15, 12), at(2024, 1, 15, 13),
                  visibility_class=Visibility.PRIVATE),
            event('Team lunch', at(2024, 1, 15, 12), at(2024, 1, 15, 13),
                  visibility_class=Visibility.PUBLIC),
        ])
        config.hide_private = True

        result = builder.build(store, config, NOW)

        assert [e.title for e in result] == ['Team lunch']
        assert all(e.visibility_class != Visibility.PRIVATE for e in result)

    def test_deduplicates_across_sources(self, builder, config):
        """Test the same title and start from two sources is listed once."""
        store = EventStore()
        store.put('https://a.example/cal', [event('Holiday', at(2024, 1, 20), at(2024, 1, 21))])
        store.put('https://b.example/cal', [event('Holiday', at(2024, 1, 20), at(2024, 1, 21))])

        result = builder.build(store, config, NOW)

        assert len(result) == 1
        assert result[0].source_id == 'https://a.example/cal'

    def test_stamps_source_and_today(self, builder, config):
        store = EventStore()
        store.put('a', [
            event('Lunch', at(2024, 1, 15, 12), at(2024, 1, 15, 13)),
            event('Dinner', at(2024, 1, 16, 19), at(2024, 1, 16, 21)),
        ])

        lunch, dinner = builder.build(store, config, NOW)

        assert lunch.source_id == 'a' and lunch.today is True
        assert dinner.source_id == 'a' and dinner.today is False

    def test_store_not_mutated(self, builder, config):
        """Test that building works on copies of the stored events."""
        raw = event('Trip', at(2024, 1, 15, 10), at(2024, 1, 15, 10) + int(2.5 * ONE_DAY))
        store = EventStore()
        store.put('a', [raw])
        config.slice_multi_day_events = True

        builder.build(store, config, NOW)
        builder.build(store, config, NOW)

        stored = store.get('a')[0]
        assert stored.title == 'Trip'
        assert stored.source_id is None
        assert stored.today is False
        assert stored.start_date == at(2024, 1, 15, 10)


class TestSlicing:
    """Test cases for multi-day slicing."""

    def test_two_and_a_half_days_make_three_fragments(self, builder, config):
        start = at(2024, 1, 15, 10)
        end = start + int(2.5 * ONE_DAY)
        store = EventStore()
        store.put('a', [event('X', start, end)])
        config.slice_multi_day_events = True

        result = builder.build(store, config, NOW)

        assert [e.title for e in result] == ['X (1/3)', 'X (2/3)', 'X (3/3)']
        assert result[0].start_date == start
        assert result[0].end_date == result[1].start_date == at(2024, 1, 16)
        assert result[1].end_date == result[2].start_date == at(2024, 1, 17)
        assert result[2].end_date == end

    def test_not_sliced_when_disabled(self, builder, config):
        start = at(2024, 1, 15, 10)
        store = EventStore()
        store.put('a', [event('X', start, start + int(2.5 * ONE_DAY))])

        result = builder.build(store, config, NOW)

        assert [e.title for e in result] == ['X']

    def test_single_day_event_not_sliced(self, builder, config):
        """Test an event ending exactly at midnight stays whole."""
        store = EventStore()
        store.put('a', [event('Party', at(2024, 1, 15, 20), at(2024, 1, 16))])
        config.slice_multi_day_events = True

        result = builder.build(store, config, NOW)

        assert [e.title for e in result] == ['Party']

    def test_finished_fragments_dropped(self, builder, config):
        start = at(2024, 1, 15, 10)
        store = EventStore()
        store.put('a', [event('X', start, start + int(2.5 * ONE_DAY))])
        config.slice_multi_day_events = True
        now = at(2024, 1, 16, 12)

        result = builder.build(store, config, now)

        assert [e.title for e in result] == ['X (2/3)', 'X (3/3)']
        assert result[0].today is True
        assert result[1].today is False

    def test_fragments_beyond_window_dropped(self, builder, config):
        start = at(2024, 1, 15, 10)
        store = EventStore()
        store.put('a', [event('X', start, start + int(2.5 * ONE_DAY))])
        config.slice_multi_day_events = True
        config.maximum_number_of_days = 2

        result = builder.build(store, config, NOW)

        assert [e.title for e in result] == ['X (1/3)', 'X (2/3)']

    def test_fragment_count(self, builder):
        start = at(2024, 1, 15, 23)

        assert builder.fragment_count(event('X', start, start + 2 * ONE_HOUR), 'UTC') == 2
        assert builder.fragment_count(event('X', start, start + ONE_HOUR), 'UTC') == 1


class TestBuildBroadcast:
    """Test cases for the broadcast list."""

    def test_decorated_and_sorted(self, builder):
        store = EventStore()
        store.put('https://a.example/cal', [
            event('Later', at(2024, 1, 20, 9), at(2024, 1, 20, 10), source_id='https://a.example/cal'),
        ])
        store.put('https://b.example/cal', [
            event('Past', at(2023, 12, 1, 9), at(2023, 12, 1, 10)),
        ])
        sources = {
            'https://a.example/cal': EventSource(
                id='https://a.example/cal', symbol='birthday-cake',
                calendar_name='Birthdays', color='#f00'
            ),
        }

        result = builder.build_broadcast(store, sources)

        assert [e['title'] for e in result] == ['Past', 'Later']
        assert all('sourceId' not in e for e in result)
        assert result[1]['symbol'] == 'birthday-cake'
        assert result[1]['calendarName'] == 'Birthdays'
        assert result[1]['color'] == '#f00'
        assert result[0]['symbol'] == 'calendar'
        assert result[0]['color'] == '#fff'
