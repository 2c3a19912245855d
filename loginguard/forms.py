from django import forms
from django.contrib.auth.forms import AuthenticationForm
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _

from .honeypot import SecretRotator, generate_token

LOGIN_FAILED_MESSAGE = _(
    'Login failed. Please contact your site admin or agency if you continue having problems.'
)


class HoneypotInput(forms.TextInput):
    """
    Text input pre-filled with the current honeypot prefix.

    A small script appends three more characters and hides the field. If
    scripts are off the field stays visible and the label tells the user
    what to type.
    """

    label_text = _('Append three letters to this input')

    def __init__(self, attrs=None):
        defaults = {'autocomplete': 'off', 'size': '20', 'class': 'input'}
        if attrs:
            defaults.update(attrs)
        super().__init__(defaults)

    def render(self, name, value, attrs=None, renderer=None):
        secret = SecretRotator.from_settings().get_or_rotate()
        input_id = (attrs or {}).get('id') or self.attrs.get('id') or name
        wrapper_id = f'{input_id}_field'
        field_html = super().render(name, secret.prefix, attrs, renderer)
        return format_html(
            '<p id="{wrapper}" class="{wrapper}">'
            '<label for="{input_id}">{label}</label><br />{field}</p>\n'
            '<script type="text/javascript">\n'
            "  var text = document.getElementById('{input_id}');\n"
            "  text.value += '{suffix}';\n"
            "  document.getElementById('{wrapper}').style.display = 'none';\n"
            '</script>',
            wrapper=wrapper_id,
            input_id=input_id,
            label=self.label_text,
            field=field_html,
            suffix=generate_token(),
        )


class SecureLoginForm(AuthenticationForm):
    """Login form with a rotating honeypot and one generic error for every failure."""

    error_messages = {
        'invalid_login': LOGIN_FAILED_MESSAGE,
        'inactive': LOGIN_FAILED_MESSAGE,
    }

    # Checked by loginguard.backends.HoneypotBackend during authenticate()
    lh_name = forms.CharField(
        required=False,
        label='',
        strip=False,
        widget=HoneypotInput(),
    )
