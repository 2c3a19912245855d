"""
Rotating-prefix honeypot for the login form.

For a login to pass, the honeypot field must be exactly six characters
long and start with the current three character prefix. The prefix is
kept in a single site option together with its generation time and is
considered stale after ``HONEYPOT_TTL`` seconds (30 minutes by default).
The remaining three characters are appended in the browser by a script
and are never checked.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from django.db import DatabaseError
from django.utils.crypto import get_random_string

from .conf import get_setting
from .models import SiteOption

log = logging.getLogger(__name__)

FIELD_NAME = 'lh_name'
OPTION_NAME = 'loginguard_honeypot'
PREFIX_LENGTH = 3
FIELD_LENGTH = 6

# Login forms posted by this co-located plugin carry their own nonce and
# never render the honeypot, so they skip the checks entirely.
BYPASS_FIELD = 'woocommerce-login-nonce'


def generate_token(length=PREFIX_LENGTH):
    """Random letters and digits, no special characters."""
    return get_random_string(length)


@dataclass(frozen=True)
class HoneypotSecret:
    prefix: str
    generated_at: int

    def is_expired(self, now: Optional[float] = None, ttl: Optional[int] = None) -> bool:
        if now is None:
            now = time.time()
        if ttl is None:
            ttl = get_setting('HONEYPOT_TTL')
        return now - self.generated_at > ttl

    def as_option(self) -> dict:
        return {'generated': self.generated_at, 'prefix': self.prefix}

    @classmethod
    def from_option(cls, value) -> Optional['HoneypotSecret']:
        """Build from a stored option value, ``None`` if it is missing or malformed."""
        if not isinstance(value, Mapping):
            return None
        prefix = value.get('prefix')
        generated = value.get('generated')
        if not isinstance(prefix, str) or not prefix:
            return None
        try:
            generated = int(generated)
        except (TypeError, ValueError):
            return None
        return cls(prefix=prefix, generated_at=generated)


class RejectReason(str, Enum):
    FIELD_MISSING_OR_EMPTY = 'field_missing_or_empty'
    WRONG_LENGTH = 'wrong_length'
    PREFIX_EXPIRED = 'prefix_expired'
    PREFIX_MISMATCH = 'prefix_mismatch'


@dataclass(frozen=True)
class VerificationOutcome:
    accepted: bool
    reason: Optional[RejectReason] = None

    @classmethod
    def rejected(cls, reason: RejectReason) -> 'VerificationOutcome':
        return cls(accepted=False, reason=reason)

    def __bool__(self):
        return self.accepted


ACCEPTED = VerificationOutcome(accepted=True)


# ---------- secret storage ----------

class OptionSecretStore:
    """Keeps the honeypot secret in one ``SiteOption`` row."""

    def __init__(self, name=OPTION_NAME):
        self.name = name

    def get(self) -> Optional[HoneypotSecret]:
        try:
            option = SiteOption.objects.filter(name=self.name).first()
        except DatabaseError as e:
            log.error('Failed to read honeypot option %s: %s', self.name, e)
            return None
        if option is None:
            return None
        return HoneypotSecret.from_option(option.value)

    def set(self, secret: HoneypotSecret) -> bool:
        try:
            SiteOption.objects.update_or_create(
                name=self.name, defaults={'value': secret.as_option()},
            )
        except DatabaseError as e:
            log.error('Failed to store honeypot option %s: %s', self.name, e)
            return False
        return True


class SecretRotator:
    """Hands out the current honeypot secret, regenerating it once it goes stale."""

    def __init__(self, store, ttl=None, clock=time.time):
        self.store = store
        self.ttl = get_setting('HONEYPOT_TTL') if ttl is None else ttl
        self.clock = clock

    @classmethod
    def from_settings(cls):
        return cls(OptionSecretStore())

    def get_or_rotate(self) -> HoneypotSecret:
        secret = self.store.get()
        if secret is None or secret.is_expired(self.clock(), self.ttl):
            return self.reset()
        return secret

    def reset(self) -> HoneypotSecret:
        secret = HoneypotSecret(prefix=generate_token(), generated_at=int(self.clock()))
        self.store.set(secret)
        log.debug('Honeypot prefix rotated at %s', secret.generated_at)
        return secret


# ---------- verification ----------

def is_bypassed(data) -> bool:
    return BYPASS_FIELD in data


def verify(submitted: Optional[str], secret: Optional[HoneypotSecret],
           now: Optional[float] = None, ttl: Optional[int] = None) -> VerificationOutcome:
    """Check a submitted honeypot value against the current secret.

    Checks run in a fixed order and the first failing one decides the
    reason. A missing secret is treated the same as a stale one.
    """
    if submitted is None:
        return VerificationOutcome.rejected(RejectReason.FIELD_MISSING_OR_EMPTY)

    if submitted == '':
        return VerificationOutcome.rejected(RejectReason.FIELD_MISSING_OR_EMPTY)

    if len(submitted) != FIELD_LENGTH:
        return VerificationOutcome.rejected(RejectReason.WRONG_LENGTH)

    if secret is None or secret.is_expired(now, ttl):
        return VerificationOutcome.rejected(RejectReason.PREFIX_EXPIRED)

    if submitted[:PREFIX_LENGTH] != secret.prefix:
        return VerificationOutcome.rejected(RejectReason.PREFIX_MISMATCH)

    return ACCEPTED
