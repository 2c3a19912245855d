from django.db import models


class SiteOption(models.Model):
    """Named key-value slot for small pieces of site-wide state."""
    name = models.CharField(max_length=191, unique=True)
    value = models.JSONField(default=dict, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class AuditEvent(models.Model):
    """Tracks login related events for the audit trail."""
    LEVEL_CHOICES = [
        ('debug', 'Debug'),
        ('info', 'Info'),
        ('notice', 'Notice'),
        ('warning', 'Warning'),
        ('error', 'Error'),
    ]

    level = models.CharField(max_length=16, choices=LEVEL_CHOICES, default='info')
    message_key = models.CharField(max_length=100, blank=True, default='')
    message = models.TextField(blank=True, default='')
    context = models.JSONField(default=dict, blank=True)
    ip_address = models.CharField(max_length=45, blank=True, default='')  # supports IPv6
    username = models.CharField(max_length=150, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['ip_address', 'created_at'], name='loginguard__ip_addr_idx'),
        ]

    def __str__(self):
        return f"{self.ip_address} - {self.message_key or self.level} @ {self.created_at}"

    @property
    def rendered_message(self):
        """Message template with ``{placeholder}`` tokens filled from context."""
        text = self.message
        for key, value in (self.context or {}).items():
            if key.startswith('_'):
                continue
            text = text.replace('{%s}' % key, str(value))
        return text
