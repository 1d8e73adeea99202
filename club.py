import sqlalchemy as sa
import sqlalchemy.orm as so
from app import create_app, db
from app.events.feed import get_event_feed, build_feed_response
from app.events.taxonomy import EventType, BLOG_CATEGORIES
from app.models import Member, Event, EventRegistration, BlogPost
import os

app = create_app(os.getenv('FLASK_CONFIG') or 'development')

@app.shell_context_processor
def make_shell_context():
    # get_event_feed(1, 10, EventType.RACE) gives the same page as /api/events?type=RACE
    return {
        'sa': sa,
        'so': so,
        'db': db,
        'Member': Member,
        'Event': Event,
        'EventRegistration': EventRegistration,
        'BlogPost': BlogPost,
        'EventType': EventType,
        'BLOG_CATEGORIES': BLOG_CATEGORIES,
        'get_event_feed': get_event_feed,
        'build_feed_response': build_feed_response,
    }

if __name__ == '__main__':
    app.run(debug=True)
