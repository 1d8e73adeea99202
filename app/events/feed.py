"""
Upcoming events feed.

The public events listing is built from two sources: dedicated calendar
events, and published blog posts filed under an event-qualifying category
with an event date. Both are read for the same "now", projected onto
FeedItem, merged into one date-ordered list and paginated.
"""

from dataclasses import dataclass, field
from datetime import datetime
from math import ceil
from typing import Any, Dict, Literal, Optional

from flask import current_app
import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.errors import FeedUnavailableError
from app.events.taxonomy import (
    EVENT_CATEGORIES, EventType, categories_for, event_type_for
)
from app.models import BlogPost, Event, utcnow

EVENT_SOURCE = 'event'
BLOG_EVENT_SOURCE = 'blog-event'

# Used only if a blog post slips through with a category that has no event type
FALLBACK_EVENT_TYPE = EventType.SOCIAL

FeedSource = Literal['event', 'blog-event']


@dataclass(frozen=True)
class FeedItem:
    """One entry of the events feed, whichever source it came from."""
    id: int
    title: str
    description: Optional[str]
    date: datetime
    location: str
    type: EventType
    difficulty: Optional[str]
    max_participants: Optional[int]
    registration_count: int
    created_at: datetime
    updated_at: datetime
    source: FeedSource
    slug: Optional[str] = None
    featured_image_url: Optional[str] = None

    @property
    def is_blog_event(self):
        return self.source == BLOG_EVENT_SOURCE

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'date': self.date.isoformat(),
            'location': self.location,
            'type': self.type.value,
            'difficulty': self.difficulty,
            'maxParticipants': self.max_participants,
            'registrationCount': self.registration_count,
            'createdAt': self.created_at.isoformat(),
            'updatedAt': self.updated_at.isoformat(),
            'source': self.source,
        }
        if self.is_blog_event:
            data['slug'] = self.slug
            data['featuredImageUrl'] = self.featured_image_url
        return data


@dataclass
class FeedPage:
    """A page of the merged feed plus the size of the whole feed."""
    items: list[FeedItem] = field(default_factory=list)
    total: int = 0
    total_pages: int = 0


# Source readers

def read_upcoming_events(now: datetime, event_type: Optional[EventType] = None) -> list[Event]:
    """
    Get calendar events taking place at or after now.

    Args:
        now: Cutoff instant, shared with the blog reader
        event_type: Optional EventType to filter by

    Returns:
        List of Event instances ordered by date, each with registration_count loaded

    Raises:
        FeedUnavailableError: If the events table cannot be read
    """
    query = (
        sa.select(Event)
        .where(Event.date >= now)
        .order_by(Event.date, Event.id)
    )
    if event_type is not None:
        query = query.where(Event.type == event_type)

    try:
        events = db.session.scalars(query).all()
    except SQLAlchemyError as e:
        current_app.logger.error(f"Error reading upcoming events: {str(e)}")
        raise FeedUnavailableError(EVENT_SOURCE) from e

    current_app.logger.debug(f"Read {len(events)} upcoming events (type={event_type})")
    return list(events)


def read_upcoming_blog_events(now: datetime, event_type: Optional[EventType] = None) -> list[BlogPost]:
    """
    Get published blog posts announcing an event at or after now.

    Args:
        now: Cutoff instant, shared with the events reader
        event_type: Optional EventType to filter by

    Returns:
        List of BlogPost instances ordered by event date

    Raises:
        FeedUnavailableError: If the blog posts table cannot be read
    """
    categories = EVENT_CATEGORIES
    if event_type is not None:
        categories = categories_for(event_type)
        if not categories:
            # No category maps to this type, so no post can match
            current_app.logger.debug(f"No blog categories map to {event_type}, skipping blog events")
            return []

    query = (
        sa.select(BlogPost)
        .where(
            BlogPost.published == True,
            BlogPost.event_date.is_not(None),
            BlogPost.event_date >= now,
            BlogPost.category.in_(sorted(categories))
        )
        .order_by(BlogPost.event_date, BlogPost.id)
    )

    try:
        posts = db.session.scalars(query).all()
    except SQLAlchemyError as e:
        current_app.logger.error(f"Error reading upcoming blog events: {str(e)}")
        raise FeedUnavailableError(BLOG_EVENT_SOURCE) from e

    current_app.logger.debug(f"Read {len(posts)} upcoming blog events (type={event_type})")
    return list(posts)


# Normalizer

def normalize_event(event: Event) -> FeedItem:
    return FeedItem(
        id=event.id,
        title=event.title,
        description=event.description,
        date=event.date,
        location=event.location,
        type=EventType(event.type),
        difficulty=event.difficulty,
        max_participants=event.max_participants,
        registration_count=event.registration_count or 0,
        created_at=event.created_at,
        updated_at=event.updated_at,
        source=EVENT_SOURCE,
    )


def normalize_blog_event(post: BlogPost) -> FeedItem:
    """
    Project a blog post onto a feed item.

    Blog events never carry difficulty, a participant limit or registrations.
    """
    if post.event_date is None:
        raise ValueError(f"Blog post {post.id} has no event date")

    event_type = event_type_for(post.category)
    if event_type is None:
        current_app.logger.warning(
            f"Blog post {post.id} has non-event category '{post.category}', "
            f"listing it as {FALLBACK_EVENT_TYPE.value}"
        )
        event_type = FALLBACK_EVENT_TYPE

    return FeedItem(
        id=post.id,
        title=post.title,
        description=post.excerpt,
        date=post.event_date,
        location=post.event_location or '',
        type=event_type,
        difficulty=None,
        max_participants=None,
        registration_count=0,
        created_at=post.created_at,
        updated_at=post.updated_at,
        source=BLOG_EVENT_SOURCE,
        slug=post.slug,
        featured_image_url=post.featured_image_url,
    )


# Merge, sort and paginate

def clamp_pagination(page: Optional[int], per_page: Optional[int],
                     default_per_page: int = 10, max_per_page: int = 50) -> tuple[int, int]:
    """
    Bring requested pagination values into range.

    Stale or hand-edited links should still get a page rather than an error.

    Returns:
        Tuple of (page, per_page)
    """
    page = max(1, page or 1)
    if per_page is None:
        per_page = default_per_page
    per_page = min(max(1, per_page), max_per_page)
    return page, per_page


def merge_sort_paginate(events: list[FeedItem], blog_events: list[FeedItem],
                        page: int, per_page: int) -> FeedPage:
    """
    Merge both normalized sources and cut out one page.

    Ids of the two sources live in separate spaces, so nothing is deduplicated.
    The sort is stable: items sharing a date keep their relative input order.

    Args:
        events: Feed items built from calendar events
        blog_events: Feed items built from blog posts
        page: 1-indexed page number
        per_page: Page size

    Returns:
        FeedPage; a page past the end has no items but keeps the totals
    """
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if per_page < 1:
        raise ValueError(f"per_page must be >= 1, got {per_page}")

    combined = sorted(list(events) + list(blog_events), key=lambda item: item.date)

    total = len(combined)
    total_pages = ceil(total / per_page)
    skip = (page - 1) * per_page

    return FeedPage(
        items=combined[skip:skip + per_page],
        total=total,
        total_pages=total_pages,
    )


def build_feed_response(feed_page: FeedPage) -> Dict[str, Any]:
    return {
        'events': [item.to_dict() for item in feed_page.items],
        'total': feed_page.total,
        'totalPages': feed_page.total_pages,
    }


def get_event_feed(page: int = 1, per_page: int = 10,
                   event_type: Optional[EventType] = None,
                   now: Optional[datetime] = None) -> FeedPage:
    """
    Build one page of the upcoming events feed.

    Both sources are read against the same now. If either read fails the
    whole feed fails; a feed missing one source would report wrong totals.

    Args:
        page: 1-indexed page number (already clamped)
        per_page: Page size (already clamped)
        event_type: Optional EventType filter applied to both sources
        now: Cutoff instant; sampled from the clock when not given

    Returns:
        FeedPage for the requested page

    Raises:
        FeedUnavailableError: If either source cannot be read
    """
    if now is None:
        now = utcnow()

    events = read_upcoming_events(now, event_type)
    blog_events = read_upcoming_blog_events(now, event_type)

    return merge_sort_paginate(
        [normalize_event(event) for event in events],
        [normalize_blog_event(post) for post in blog_events],
        page,
        per_page,
    )
