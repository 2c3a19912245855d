"""
Login audit trail.

Events pass through a chain of interceptors before being stored as
``AuditEvent`` rows. Each interceptor receives the current ``should_log``
decision and returns a possibly changed one, so an interceptor can take
over an event (e.g. send it to the combined login log) and stop the
default storage.
"""

import logging

from django.db import DatabaseError
from django.utils.module_loading import import_string

from .combined_log import get_client_ip, write_combined_log
from .conf import get_setting
from .models import AuditEvent

log = logging.getLogger(__name__)

USER_UNKNOWN_LOGIN_FAILED = 'user_unknown_login_failed'
USER_LOGIN_FAILED = 'user_login_failed'
USER_LOGGED_IN = 'user_logged_in'

MESSAGES = {
    USER_UNKNOWN_LOGIN_FAILED: 'Failed to login with username "{failed_username}" (username does not exist)',
    USER_LOGIN_FAILED: 'Failed to login with username "{login}" (incorrect password entered)',
    USER_LOGGED_IN: 'Logged in',
}

# Placeholder tokens filled in from the event context before redirecting.
PLACEHOLDERS = ('failed_username', 'login')


def redirect_to_combined_log(should_log, level, message, context, request=None):
    """Send allowlisted audit events to the combined login log instead of the audit trail.

    Returns ``False`` when the event went to the combined log, otherwise
    ``should_log`` unchanged so the audit trail records it as usual.
    """
    message_key = context.get('_message_key')
    if message_key is None:
        return should_log

    keys_to_combined_log = get_setting('AUDIT_KEYS_TO_COMBINED_LOG')
    if message_key not in keys_to_combined_log:
        return should_log

    if not keys_to_combined_log[message_key]:
        return should_log

    for name in PLACEHOLDERS:
        if context.get(name):
            message = message.replace('{%s}' % name, str(context[name]))

    if not write_combined_log(message, request):
        return should_log

    return False


class AuditTrail:

    def __init__(self, interceptors=()):
        self.interceptors = list(interceptors)

    @classmethod
    def from_settings(cls):
        return cls(import_string(path) for path in get_setting('AUDIT_INTERCEPTORS'))

    def log(self, level, message, context=None, request=None):
        """Store an audit event unless an interceptor claims it. Returns the event or None."""
        context = dict(context or {})
        should_log = True
        for interceptor in self.interceptors:
            should_log = interceptor(should_log, level, message, context, request=request)

        if not should_log:
            return None

        username = context.get('failed_username') or context.get('login') or context.get('username') or ''
        try:
            return AuditEvent.objects.create(
                level=level,
                message_key=context.get('_message_key', ''),
                message=message,
                context=context,
                ip_address=get_client_ip(request)[:45],
                username=str(username)[:150],
            )
        except DatabaseError as e:
            log.error('Failed to store audit event %s: %s', context.get('_message_key', ''), e)
            return None

    def log_event(self, message_key, level='info', context=None, request=None):
        context = dict(context or {})
        context['_message_key'] = message_key
        return self.log(level, MESSAGES[message_key], context, request)
