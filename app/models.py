# Standard library imports
from datetime import datetime, timezone
from typing import Optional

# Third-party imports
import sqlalchemy as sa
import sqlalchemy.orm as so
from flask import abort
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

# Local application imports
from app import db, login
from app.events.taxonomy import EventType, event_type_for


def utcnow():
    """Current UTC time as a naive datetime, matching what the database stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Member(UserMixin, db.Model):
    __tablename__ = 'member'
    id: so.Mapped[int] = so.mapped_column(primary_key=True)
    username: so.Mapped[str] = so.mapped_column(sa.String(64), index=True,
                                                unique=True)
    email: so.Mapped[str] = so.mapped_column(sa.String(120), index=True,
                                             unique=True)
    firstname: so.Mapped[str] = so.mapped_column(sa.String(64), index=True)
    lastname: so.Mapped[str] = so.mapped_column(sa.String(64), index=True)
    password_hash: so.Mapped[Optional[str]] = so.mapped_column(sa.String(256))
    is_admin: so.Mapped[bool] = so.mapped_column(sa.Boolean, default=False)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)

    registrations: so.Mapped[list['EventRegistration']] = so.relationship(
        'EventRegistration', back_populates='member', cascade='all, delete-orphan'
    )

    def __repr__(self):
        return '<Member {}>'.format(self.username)

    @property
    def full_name(self):
        return f"{self.firstname} {self.lastname}"

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if self.password_hash is None or password is None:
            return False
        return check_password_hash(self.password_hash, password)


@login.user_loader
def load_user(id):
    return db.session.get(Member, int(id))


@login.unauthorized_handler
def unauthorized():
    # API clients get a 401 instead of a redirect to a login page
    abort(401)


class Event(db.Model):
    """
    A dedicated calendar event members can register for.
    """
    __tablename__ = 'events'

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    title: so.Mapped[str] = so.mapped_column(sa.String(256), nullable=False)
    description: so.Mapped[Optional[str]] = so.mapped_column(sa.Text, nullable=True)
    date: so.Mapped[datetime] = so.mapped_column(sa.DateTime, index=True, nullable=False)
    location: so.Mapped[str] = so.mapped_column(sa.String(256), nullable=False)
    type: so.Mapped[EventType] = so.mapped_column(sa.Enum(EventType), nullable=False)
    difficulty: so.Mapped[Optional[str]] = so.mapped_column(sa.String(64), nullable=True)
    max_participants: so.Mapped[Optional[int]] = so.mapped_column(sa.Integer, nullable=True)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)
    updated_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    registrations: so.Mapped[list['EventRegistration']] = so.relationship(
        'EventRegistration', back_populates='event', cascade='all, delete-orphan'
    )

    def __repr__(self):
        return f"<Event id={self.id}, title='{self.title}', type={self.type}, date={self.date}>"

    def is_full(self):
        """Check if the event has reached its participant limit"""
        if not self.max_participants:
            return False
        return (self.registration_count or 0) >= self.max_participants

    def get_active_registrations(self):
        """Get registrations that still hold a place"""
        return [reg for reg in self.registrations if reg.status == EventRegistration.REGISTERED]


class EventRegistration(db.Model):
    """
    A member's place on an event. Cancelled registrations are kept and can be reactivated.
    """
    __tablename__ = 'event_registrations'
    __table_args__ = (
        sa.UniqueConstraint('member_id', 'event_id', name='uq_event_registration_member_event'),
    )

    REGISTERED = 'REGISTERED'
    ATTENDED = 'ATTENDED'
    CANCELLED = 'CANCELLED'
    STATUSES = (REGISTERED, ATTENDED, CANCELLED)

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    member_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('member.id', ondelete='CASCADE'), nullable=False)
    event_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False)
    status: so.Mapped[str] = so.mapped_column(sa.String(16), default=REGISTERED, nullable=False)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)
    updated_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    event: so.Mapped['Event'] = so.relationship('Event', back_populates='registrations')
    member: so.Mapped['Member'] = so.relationship('Member', back_populates='registrations')

    def __repr__(self):
        return f"<EventRegistration id={self.id}, member_id={self.member_id}, event_id={self.event_id}, status='{self.status}'>"

    @property
    def is_active(self):
        return self.status == self.REGISTERED


# Live count of active registrations, loaded with every Event
Event.registration_count = so.column_property(
    sa.select(sa.func.count(EventRegistration.id))
    .where(
        EventRegistration.event_id == Event.id,
        EventRegistration.status == EventRegistration.REGISTERED
    )
    .correlate_except(EventRegistration)
    .scalar_subquery()
)


class BlogPost(db.Model):
    """
    Editorial post. Posts filed under an event-qualifying category with an
    event date also appear in the upcoming events feed.
    """
    __tablename__ = 'blog_posts'

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    title: so.Mapped[str] = so.mapped_column(sa.String(255), nullable=False)
    slug: so.Mapped[str] = so.mapped_column(sa.String(255), nullable=False, unique=True, index=True)
    excerpt: so.Mapped[Optional[str]] = so.mapped_column(sa.String(500), nullable=True)
    content: so.Mapped[str] = so.mapped_column(sa.Text, nullable=False, default='')
    featured_image_url: so.Mapped[Optional[str]] = so.mapped_column(sa.String(500), nullable=True)
    category: so.Mapped[str] = so.mapped_column(sa.String(64), index=True, nullable=False)
    published: so.Mapped[bool] = so.mapped_column(sa.Boolean, default=False, nullable=False)
    published_at: so.Mapped[Optional[datetime]] = so.mapped_column(sa.DateTime, nullable=True)
    event_date: so.Mapped[Optional[datetime]] = so.mapped_column(sa.DateTime, index=True, nullable=True)
    event_location: so.Mapped[Optional[str]] = so.mapped_column(sa.String(256), nullable=True)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)
    updated_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<BlogPost id={self.id}, slug='{self.slug}', category='{self.category}', published={self.published}>"

    def is_event_post(self):
        """Check if the post describes an event (qualifying category and an event date)"""
        return self.event_date is not None and event_type_for(self.category) is not None
