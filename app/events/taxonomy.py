"""
Event types and the blog category taxonomy.

Blog posts are filed under one of a fixed set of editorial categories. Some of
those categories describe something members can turn up to, so they map onto
an EventType and make the post eligible for the upcoming events feed.

CATEGORY_EVENT_TYPE is the only hand-maintained mapping. The list of
event-qualifying categories and the reverse lookup are both derived from it.
"""

import enum
from typing import Optional


class EventType(str, enum.Enum):
    TRAINING = 'TRAINING'
    RACE = 'RACE'
    CAMP = 'CAMP'
    SOCIAL = 'SOCIAL'


BLOG_CATEGORIES = (
    'Actualités',
    'Course',
    'Entraînement',
    'Stage',
    'Vie du club',
    'Résultats',
    'Conseils',
)

CATEGORY_EVENT_TYPE = {
    'Actualités': None,
    'Course': EventType.RACE,
    'Entraînement': EventType.TRAINING,
    'Stage': EventType.CAMP,
    'Vie du club': EventType.SOCIAL,
    'Résultats': None,
    'Conseils': None,
}

# Categories whose posts can appear in the events feed, in BLOG_CATEGORIES order
EVENT_CATEGORIES = tuple(
    category for category in BLOG_CATEGORIES
    if CATEGORY_EVENT_TYPE.get(category) is not None
)


def event_type_for(category: str) -> Optional[EventType]:
    """
    Get the event type a blog category stands for.

    Args:
        category: Blog category label

    Returns:
        EventType, or None if the category is not event-qualifying or unknown
    """
    return CATEGORY_EVENT_TYPE.get(category)


def categories_for(event_type: EventType) -> frozenset[str]:
    """
    Get every blog category that maps to an event type.

    An empty set is a valid answer: it means no blog post can ever match
    a filter on this type.

    Args:
        event_type: EventType to look up

    Returns:
        Frozen set of category labels
    """
    return frozenset(
        category for category, mapped_type in CATEGORY_EVENT_TYPE.items()
        if mapped_type is not None and mapped_type == event_type
    )


def parse_event_type(value: Optional[str]) -> Optional[EventType]:
    """
    Parse an event type filter from a query string.

    Only the exact enum values are recognised. Anything else, including a
    lower-case spelling, is treated as "no filter" rather than an error.
    """
    if not value:
        return None
    try:
        return EventType(value)
    except ValueError:
        return None
