import logging

from django.core.exceptions import PermissionDenied

from .combined_log import log_failure
from .honeypot import FIELD_NAME, OptionSecretStore, is_bypassed, verify

log = logging.getLogger(__name__)

SUPPRESS_AUDIT_ATTR = 'loginguard_suppress_audit'


class HoneypotBackend:
    """
    Authentication backend that vets the login form honeypot.

    Must come first in AUTHENTICATION_BACKENDS. It never authenticates
    anyone itself: a passing honeypot returns None so the next backend
    checks the credentials, a failing one raises PermissionDenied which
    stops Django from trying the remaining backends.
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        # Only form posts carry the honeypot
        if request is None or request.method != 'POST' or not request.POST:
            return None

        if is_bypassed(request.POST):
            return None

        outcome = verify(request.POST.get(FIELD_NAME), OptionSecretStore().get())
        if outcome.accepted:
            return None

        log.info('Honeypot rejected login for %r: %s', username, outcome.reason.value)
        result = log_failure(outcome.reason, request)
        if result.suppress_audit:
            setattr(request, SUPPRESS_AUDIT_ATTR, True)
        raise PermissionDenied(outcome.reason.value)

    def get_user(self, user_id):
        return None
