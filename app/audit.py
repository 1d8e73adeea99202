"""
Audit Logging for Event Registrations

Every change a member makes to their event registrations is written to the
audit log with timestamp, user and operation details.

Usage:
    from app.audit import audit_log_create, audit_log_update

    # For new registrations
    audit_log_create('EventRegistration', registration.id, f'Registered for event: {event.title}')

    # For status changes
    audit_log_update('EventRegistration', registration.id, 'Cancelled registration', {'status': 'REGISTERED'})
"""

import logging
import os
from typing import Optional, Dict, Any, Union
from flask import current_app
from flask_login import current_user


# Configure audit logger
def setup_audit_logger():
    """Setup and configure the audit logger with proper formatting and file handling."""
    audit_logger = logging.getLogger('audit')
    audit_logger.setLevel(logging.INFO)

    # Prevent duplicate log entries
    if audit_logger.hasHandlers():
        return audit_logger

    log_dir = os.path.join(current_app.instance_path, 'logs')
    os.makedirs(log_dir, exist_ok=True)

    log_file = os.path.join(log_dir, 'audit.log')
    file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    audit_logger.addHandler(file_handler)

    # Prevent propagation to root logger
    audit_logger.propagate = False

    return audit_logger


def get_current_user_info() -> str:
    """Get current user information for audit logging."""
    if current_user.is_authenticated:
        return f"{current_user.username} (ID: {current_user.id})"
    return "SYSTEM"


def _format_details(data: Optional[Dict[str, Any]]) -> str:
    if not data:
        return ''
    return ' | ' + ', '.join(f"{key}={value}" for key, value in sorted(data.items()))


def audit_log_create(model_name: str, record_id: Union[int, str], description: str,
                     additional_data: Optional[Dict[str, Any]] = None):
    """
    Log database record creation.

    Args:
        model_name: Name of the database model (e.g., 'EventRegistration')
        record_id: ID of the created record
        description: Human-readable description of the operation
        additional_data: Optional additional data to include in the log
    """
    logger = setup_audit_logger()
    user_info = get_current_user_info()

    log_message = (f"CREATE | {model_name} | ID: {record_id} | User: {user_info} | {description}"
                   f"{_format_details(additional_data)}")

    logger.info(log_message)


def audit_log_update(model_name: str, record_id: Union[int, str], description: str,
                     changes: Optional[Dict[str, Any]] = None):
    """
    Log database record updates.

    Args:
        model_name: Name of the database model (e.g., 'EventRegistration')
        record_id: ID of the updated record
        description: Human-readable description of the operation
        changes: Optional dictionary of field changes {'field': 'old_value'}
    """
    logger = setup_audit_logger()
    user_info = get_current_user_info()

    log_message = (f"UPDATE | {model_name} | ID: {record_id} | User: {user_info} | {description}"
                   f"{_format_details(changes)}")

    logger.info(log_message)
