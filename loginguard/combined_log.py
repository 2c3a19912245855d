"""
Combined login log.

A single append-only file that gathers login failures from the honeypot
and from the audit trail, one line per event::

    2024-01-02 03:04:05 client: 203.0.113.5, failed to login (honeypot length), site example.com

Writing never raises. Any problem (logging switched off, missing or
read-only file) makes the write report ``False`` so callers can fall back
to their own logging.
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit

from django.core.exceptions import DisallowedHost
from django.http.request import split_domain_port
from django.utils import timezone

from .conf import get_setting
from .honeypot import RejectReason

log = logging.getLogger(__name__)

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

# Whitespace runs, newlines included, collapse to one space so every event stays on one line
_WHITESPACE_RE = re.compile(r'\s+')

FAILURE_MESSAGES = {
    RejectReason.FIELD_MISSING_OR_EMPTY: 'failed to login (honeypot empty)',
    RejectReason.WRONG_LENGTH: 'failed to login (honeypot length)',
    RejectReason.PREFIX_EXPIRED: 'failed to login (honeypot old prefix)',
    RejectReason.PREFIX_MISMATCH: 'failed to login (honeypot wrong prefix)',
}


@dataclass(frozen=True)
class FailureLogResult:
    wrote: bool
    # The audit trail should skip its own record of this login failure.
    suppress_audit: bool


def get_client_ip(request):
    """First non-empty of Client-IP, X-Forwarded-For and the peer address.

    The proxy headers are taken as sent and can be spoofed by the client.
    """
    if request is None:
        return ''
    meta = request.META
    if meta.get('HTTP_CLIENT_IP'):
        return meta['HTTP_CLIENT_IP']
    if meta.get('HTTP_X_FORWARDED_FOR'):
        return meta['HTTP_X_FORWARDED_FOR']
    return meta.get('REMOTE_ADDR', '')


def get_site_host(request=None):
    site_url = get_setting('SITE_URL')
    if site_url:
        return urlsplit(site_url).hostname or ''
    if request is not None:
        try:
            domain, _port = split_domain_port(request.get_host())
        except DisallowedHost:
            return ''
        return domain
    return ''


def _one_line(value):
    return _WHITESPACE_RE.sub(' ', str(value))


def format_line(message, ip, host, now=None):
    if now is None:
        now = timezone.localtime()
    message, ip, host = _one_line(message), _one_line(ip), _one_line(host)
    return f"{now.strftime(TIMESTAMP_FORMAT)} client: {ip}, {message.lower()}, site {host}\n"


def _ensure_writable(path):
    try:
        if not path.exists():
            path.touch()
        if not path.exists():
            return False
        if not os.access(path, os.W_OK):
            log.warning('Combined login log %s is not writable', path)
            return False
    except (OSError, ValueError) as e:
        log.warning('Could not prepare combined login log %s: %s', path, e)
        return False
    return True


def write_combined_log(message, request=None, now=None):
    """Append ``message`` to the combined login log. Returns True if the line was written."""
    if not get_setting('WRITE_COMBINED_LOG'):
        return False

    path = Path(get_setting('COMBINED_LOG_FILE'))
    if not _ensure_writable(path):
        return False

    line = format_line(message, get_client_ip(request), get_site_host(request), now)
    try:
        with open(path, 'a', encoding='utf-8') as fh:
            fh.write(line)
    except (OSError, ValueError) as e:
        log.warning('Failed to write combined login log %s: %s', path, e)
        return False
    return True


def log_failure(reason, request=None, now=None):
    """Record a rejected honeypot check in the combined log."""
    wrote = write_combined_log(FAILURE_MESSAGES[RejectReason(reason)], request, now)
    return FailureLogResult(wrote=wrote, suppress_audit=wrote)
