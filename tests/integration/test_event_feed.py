"""
Integration tests for reading and merging the events feed from the database.
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import patch
from sqlalchemy.exc import OperationalError

from app.errors import FeedUnavailableError
from app.events import feed
from app.events.feed import (
    build_feed_response, get_event_feed, read_upcoming_blog_events, read_upcoming_events
)
from app.events.taxonomy import CATEGORY_EVENT_TYPE, EventType
from app.models import EventRegistration
from tests.fixtures.factories import (
    BlogPostFactory, EventBlogPostFactory, EventFactory, EventRegistrationFactory
)


@pytest.fixture
def scenario(db_session):
    """Two calendar events around one race announced on the blog."""
    training = EventFactory.create(
        title='Entraînement du mercredi', date=datetime(2026, 4, 1, 19, 0),
        type=EventType.TRAINING
    )
    camp = EventFactory.create(
        title='Stage de printemps', date=datetime(2026, 4, 10, 9, 0),
        type=EventType.CAMP
    )
    race_post = EventBlogPostFactory.create(
        title='Trail des Collines', slug='trail-des-collines',
        category='Course', event_date=datetime(2026, 4, 5, 9, 0)
    )
    return {'training': training, 'camp': camp, 'race_post': race_post}


@pytest.mark.integration
class TestEventReader:
    """Test cases for reading upcoming calendar events."""

    def test_only_upcoming_events(self, db_session, now):
        EventFactory.create(title='Past', date=now - timedelta(days=1))
        EventFactory.create(title='Now', date=now)
        EventFactory.create(title='Future', date=now + timedelta(days=1))

        titles = [event.title for event in read_upcoming_events(now)]

        assert titles == ['Now', 'Future']

    def test_ordered_by_date(self, db_session, now):
        EventFactory.create(title='Later', date=now + timedelta(days=9))
        EventFactory.create(title='Sooner', date=now + timedelta(days=2))

        titles = [event.title for event in read_upcoming_events(now)]

        assert titles == ['Sooner', 'Later']

    def test_type_filter(self, db_session, now):
        EventFactory.create(title='Race', date=now + timedelta(days=1), type=EventType.RACE)
        EventFactory.create(title='Training', date=now + timedelta(days=2), type=EventType.TRAINING)

        events = read_upcoming_events(now, EventType.RACE)

        assert [event.title for event in events] == ['Race']

    def test_registration_count_only_counts_active(self, db_session, now):
        event = EventFactory.create(date=now + timedelta(days=3))
        EventRegistrationFactory.create(event=event)
        EventRegistrationFactory.create(event=event)
        EventRegistrationFactory.create(event=event, status=EventRegistration.CANCELLED)

        [loaded] = read_upcoming_events(now)

        assert loaded.registration_count == 2

    def test_read_failure_raises_feed_error(self, db_session, now):
        with patch('sqlalchemy.orm.Session.scalars', side_effect=OperationalError('SELECT', {}, Exception('down'))):
            with pytest.raises(FeedUnavailableError) as exc_info:
                read_upcoming_events(now)

        assert exc_info.value.source == 'event'


@pytest.mark.integration
class TestBlogEventReader:
    """Test cases for reading upcoming event blog posts."""

    def test_only_published_future_event_posts(self, db_session, now):
        EventBlogPostFactory.create(slug='upcoming', event_date=now + timedelta(days=4))
        EventBlogPostFactory.create(slug='past', event_date=now - timedelta(days=4))
        EventBlogPostFactory.create(slug='draft', published=False, event_date=now + timedelta(days=4))
        BlogPostFactory.create(slug='no-date', category='Course', event_date=None)
        EventBlogPostFactory.create(slug='news', category='Actualités', event_date=now + timedelta(days=4))

        slugs = [post.slug for post in read_upcoming_blog_events(now)]

        assert slugs == ['upcoming']

    def test_ordered_by_event_date(self, db_session, now):
        EventBlogPostFactory.create(slug='later', event_date=now + timedelta(days=8))
        EventBlogPostFactory.create(slug='sooner', event_date=now + timedelta(days=1))

        slugs = [post.slug for post in read_upcoming_blog_events(now)]

        assert slugs == ['sooner', 'later']

    def test_type_filter_uses_mapped_categories(self, db_session, now):
        EventBlogPostFactory.create(slug='race', category='Course', event_date=now + timedelta(days=1))
        EventBlogPostFactory.create(slug='camp', category='Stage', event_date=now + timedelta(days=2))

        slugs = [post.slug for post in read_upcoming_blog_events(now, EventType.CAMP)]

        assert slugs == ['camp']

    def test_type_without_categories_skips_query(self, db_session, now, monkeypatch):
        """No category maps to SOCIAL: nothing can match and the database is not asked."""
        monkeypatch.setitem(CATEGORY_EVENT_TYPE, 'Vie du club', None)
        EventBlogPostFactory.create(slug='party', category='Vie du club', event_date=now + timedelta(days=1))

        with patch('sqlalchemy.orm.Session.scalars') as mock_scalars:
            posts = read_upcoming_blog_events(now, EventType.SOCIAL)

        assert posts == []
        mock_scalars.assert_not_called()

    def test_read_failure_raises_feed_error(self, db_session, now):
        with patch('sqlalchemy.orm.Session.scalars', side_effect=OperationalError('SELECT', {}, Exception('down'))):
            with pytest.raises(FeedUnavailableError) as exc_info:
                read_upcoming_blog_events(now)

        assert exc_info.value.source == 'blog-event'


@pytest.mark.integration
class TestGetEventFeed:
    """Test cases for building the merged feed."""

    def test_merges_both_sources_by_date(self, scenario, now):
        page = get_event_feed(page=1, per_page=10, now=now)

        assert [item.date.day for item in page.items] == [1, 5, 10]
        assert [item.source for item in page.items] == ['event', 'blog-event', 'event']
        assert page.items[1].slug == 'trail-des-collines'
        assert page.total == 3
        assert page.total_pages == 1

    def test_race_filter(self, scenario, now):
        EventFactory.create(title='10 km de Renaix', date=datetime(2026, 4, 20, 10, 0), type=EventType.RACE)

        page = get_event_feed(page=1, per_page=10, event_type=EventType.RACE, now=now)

        assert [item.title for item in page.items] == ['Trail des Collines', '10 km de Renaix']
        assert all(item.type == EventType.RACE for item in page.items)

    def test_social_filter_without_matching_posts(self, scenario, now):
        """Only 'Vie du club' maps to SOCIAL and no fixture post uses it."""
        EventFactory.create(title='Barbecue', date=datetime(2026, 6, 1, 18, 0), type=EventType.SOCIAL)

        page = get_event_feed(page=1, per_page=10, event_type=EventType.SOCIAL, now=now)

        assert [item.title for item in page.items] == ['Barbecue']
        assert [item.source for item in page.items] == ['event']

    def test_type_filter_closure(self, scenario, now):
        for event_type in EventType:
            page = get_event_feed(page=1, per_page=50, event_type=event_type, now=now)
            assert all(item.type == event_type for item in page.items)

    def test_every_item_is_not_before_now(self, scenario, now):
        EventFactory.create(date=now - timedelta(hours=1))
        EventBlogPostFactory.create(event_date=now - timedelta(hours=1))

        page = get_event_feed(page=1, per_page=50, now=now)

        assert page.total == 3
        assert all(item.date >= now for item in page.items)

    def test_same_now_is_used_for_both_sources(self, db_session):
        """Moving now past the blog event drops it while the later event stays."""
        EventFactory.create(date=datetime(2026, 4, 10, 9, 0))
        EventBlogPostFactory.create(event_date=datetime(2026, 4, 5, 9, 0))

        page = get_event_feed(page=1, per_page=10, now=datetime(2026, 4, 6))

        assert [item.source for item in page.items] == ['event']

    def test_pagination_over_both_sources(self, db_session, now):
        for day in range(1, 6):
            EventFactory.create(date=datetime(2026, 4, day * 2, 10, 0))
        for day in range(1, 5):
            EventBlogPostFactory.create(event_date=datetime(2026, 4, day * 2 + 1, 10, 0))

        full = get_event_feed(page=1, per_page=50, now=now).items
        pages = [get_event_feed(page=n, per_page=4, now=now) for n in (1, 2, 3)]

        assert [p.total_pages for p in pages] == [3, 3, 3]
        assert [len(p.items) for p in pages] == [4, 4, 1]
        assert [item for p in pages for item in p.items] == full

    def test_page_past_the_end(self, scenario, now):
        page = get_event_feed(page=5, per_page=2, now=now)

        assert page.items == []
        assert page.total == 3
        assert page.total_pages == 2

    def test_idempotent(self, scenario, now):
        first = build_feed_response(get_event_feed(page=1, per_page=10, now=now))
        second = build_feed_response(get_event_feed(page=1, per_page=10, now=now))

        assert first == second

    def test_samples_clock_once_when_now_missing(self, scenario):
        with patch.object(feed, 'utcnow', return_value=datetime(2026, 3, 1)) as mock_utcnow:
            page = get_event_feed(page=1, per_page=10)

        mock_utcnow.assert_called_once()
        assert page.total == 3

    def test_source_failure_aborts_whole_feed(self, scenario, now):
        with patch.object(feed, 'read_upcoming_blog_events',
                          side_effect=FeedUnavailableError('blog-event')):
            with pytest.raises(FeedUnavailableError):
                get_event_feed(page=1, per_page=10, now=now)
