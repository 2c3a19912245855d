from django.apps import AppConfig


class LoginGuardConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'loginguard'
    verbose_name = 'Login guard'

    def ready(self):
        from . import signals  # noqa: F401
