# API routes for the Club Events application
from datetime import datetime, timezone

from flask import jsonify, request, current_app
from flask_login import login_required, current_user
import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.api import bp
from app import db, limiter
from app.audit import audit_log_create, audit_log_update
from app.events.feed import (
    build_feed_response, clamp_pagination, get_event_feed, normalize_event
)
from app.events.taxonomy import parse_event_type
from app.models import Event, EventRegistration


def _registration_limit():
    return current_app.config.get('EVENT_REGISTRATION_RATE_LIMIT', '20 per hour')


def _registration_data(registration):
    return {
        'id': registration.id,
        'eventId': registration.event_id,
        'status': registration.status,
        'user': {
            'id': registration.member.id,
            'name': registration.member.full_name
        },
        'createdAt': registration.created_at.isoformat()
    }


def _event_full():
    return jsonify({
        'success': False,
        'error': 'Event is full'
    }), 409


def _over_capacity(event):
    # Recount after flush; a concurrent request may have taken the last place
    if event.max_participants is None:
        return False
    db.session.flush()
    active = db.session.scalar(
        sa.select(sa.func.count(EventRegistration.id)).where(
            EventRegistration.event_id == event.id,
            EventRegistration.status == EventRegistration.REGISTERED
        )
    )
    return active > event.max_participants


@bp.route('/events')
def list_events():
    """
    Paginated list of upcoming events, merging calendar events and event blog posts.
    Public endpoint.

    Query params:
        page: page number (default 1)
        per_page: page size (default EVENTS_PER_PAGE, max EVENTS_MAX_PER_PAGE)
        type: EventType filter, unknown values are ignored
    """
    page, per_page = clamp_pagination(
        request.args.get('page', 1, type=int),
        request.args.get('per_page', None, type=int),
        default_per_page=current_app.config.get('EVENTS_PER_PAGE', 10),
        max_per_page=current_app.config.get('EVENTS_MAX_PER_PAGE', 50)
    )
    event_type = parse_event_type(request.args.get('type'))

    try:
        feed_page = get_event_feed(page=page, per_page=per_page, event_type=event_type)
        return jsonify(build_feed_response(feed_page))

    except Exception as e:
        current_app.logger.error(f"Error in list_events API: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'Could not load events'
        }), 500


@bp.route('/events/<int:event_id>')
def get_event(event_id):
    """
    Get a single calendar event with its active registrations. Public endpoint.
    """
    try:
        event = db.session.get(Event, event_id)
        if not event:
            return jsonify({
                'success': False,
                'error': 'Event not found'
            }), 404

        event_data = normalize_event(event).to_dict()
        event_data['registrations'] = [
            _registration_data(registration)
            for registration in event.get_active_registrations()
        ]

        return jsonify({
            'success': True,
            'event': event_data
        })

    except Exception as e:
        current_app.logger.error(f"Error in get_event API: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'An error occurred while retrieving event details'
        }), 500


@bp.route('/events/<int:event_id>/register', methods=['POST'])
@login_required
@limiter.limit(_registration_limit)
def register_for_event(event_id):
    """
    Register the current member for an event.
    A previously cancelled registration is reactivated rather than duplicated.
    """
    try:
        event = db.session.get(Event, event_id)
        if not event:
            return jsonify({
                'success': False,
                'error': 'Event not found'
            }), 404

        if event.is_full():
            return _event_full()

        existing = db.session.scalar(
            sa.select(EventRegistration).where(
                EventRegistration.member_id == current_user.id,
                EventRegistration.event_id == event_id
            )
        )

        if existing and existing.is_active:
            return jsonify({
                'success': False,
                'error': 'Already registered'
            }), 409

        if existing:
            previous_status = existing.status
            existing.status = EventRegistration.REGISTERED
            registration = existing
            if _over_capacity(event):
                db.session.rollback()
                return _event_full()
            db.session.commit()
            audit_log_update('EventRegistration', registration.id,
                             f'Re-registered for event: {event.title}',
                             {'status': previous_status})
        else:
            registration = EventRegistration(member_id=current_user.id, event_id=event_id)
            db.session.add(registration)
            if _over_capacity(event):
                db.session.rollback()
                return _event_full()
            db.session.commit()
            audit_log_create('EventRegistration', registration.id,
                             f'Registered for event: {event.title}',
                             {'event_id': event_id})

        current_app.logger.info(f"Member {current_user.username} registered for event {event_id}")

        return jsonify({
            'success': True,
            'registration': _registration_data(registration)
        }), 201

    except IntegrityError:
        # Concurrent request created the registration first
        db.session.rollback()
        return jsonify({
            'success': False,
            'error': 'Already registered'
        }), 409

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error in register_for_event API: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'An error occurred while registering for the event'
        }), 500


@bp.route('/events/<int:event_id>/register', methods=['DELETE'])
@login_required
@limiter.limit(_registration_limit)
def unregister_from_event(event_id):
    """
    Cancel the current member's registration for an event.
    """
    try:
        registration = db.session.scalar(
            sa.select(EventRegistration).where(
                EventRegistration.member_id == current_user.id,
                EventRegistration.event_id == event_id
            )
        )

        if not registration or registration.status == EventRegistration.CANCELLED:
            return jsonify({
                'success': False,
                'error': 'No registration found'
            }), 404

        previous_status = registration.status
        registration.status = EventRegistration.CANCELLED
        db.session.commit()

        audit_log_update('EventRegistration', registration.id,
                         f'Cancelled registration for event {event_id}',
                         {'status': previous_status})
        current_app.logger.info(f"Member {current_user.username} cancelled registration for event {event_id}")

        return jsonify({'success': True})

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error in unregister_from_event API: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'An error occurred while cancelling the registration'
        }), 500


@bp.route('/health')
@limiter.exempt
def health():
    """
    Health check for load balancer probes. Returns 503 when the database is unreachable.
    """
    timestamp = datetime.now(timezone.utc).isoformat()
    version = current_app.config.get('APP_VERSION', '0.1.0')

    try:
        db.session.execute(sa.text('SELECT 1'))
        return jsonify({
            'status': 'ok',
            'timestamp': timestamp,
            'version': version,
            'db': 'ok'
        }), 200

    except SQLAlchemyError as e:
        current_app.logger.error(f"Health check database failure: {str(e)}")
        db.session.rollback()
        return jsonify({
            'status': 'error',
            'timestamp': timestamp,
            'version': version,
            'db': 'unavailable'
        }), 503
