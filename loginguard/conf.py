from django.conf import settings

DEFAULTS = {
    'WRITE_COMBINED_LOG': True,
    'COMBINED_LOG_FILE': '/var/log/django/login.log',
    'SITE_URL': '',
    'HOME_URL': '/',
    'HONEYPOT_TTL': 30 * 60,
    'AUDIT_KEYS_TO_COMBINED_LOG': {
        'user_unknown_login_failed': True,
    },
    'AUDIT_INTERCEPTORS': [
        'loginguard.audit.redirect_to_combined_log',
    ],
}


def get_setting(name):
    """Look up ``name`` in the ``LOGIN_GUARD`` settings dict, falling back to the default.

    Read on every call so ``override_settings`` takes effect immediately.
    """
    overrides = getattr(settings, 'LOGIN_GUARD', None) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
