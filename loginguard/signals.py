from django.contrib.auth import get_user_model
from django.contrib.auth.signals import user_logged_in, user_login_failed
from django.dispatch import receiver

from .audit import AuditTrail, USER_LOGGED_IN, USER_LOGIN_FAILED, USER_UNKNOWN_LOGIN_FAILED
from .backends import SUPPRESS_AUDIT_ATTR
from .honeypot import SecretRotator


@receiver(user_logged_in, dispatch_uid='loginguard_logged_in')
def on_user_logged_in(sender, request, user, **kwargs):
    # A fresh prefix on every login keeps a captured form from being replayed later
    SecretRotator.from_settings().reset()
    AuditTrail.from_settings().log_event(
        USER_LOGGED_IN, context={'username': user.get_username()}, request=request,
    )


@receiver(user_login_failed, dispatch_uid='loginguard_login_failed')
def on_user_login_failed(sender, credentials, request=None, **kwargs):
    if request is not None and getattr(request, SUPPRESS_AUDIT_ATTR, False):
        return

    User = get_user_model()
    username = credentials.get(User.USERNAME_FIELD) or credentials.get('username') or ''
    trail = AuditTrail.from_settings()
    if username and User._default_manager.filter(**{User.USERNAME_FIELD: username}).exists():
        trail.log_event(USER_LOGIN_FAILED, level='warning', context={'login': username}, request=request)
    else:
        trail.log_event(USER_UNKNOWN_LOGIN_FAILED, level='warning',
                        context={'failed_username': username}, request=request)
