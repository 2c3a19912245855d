"""
Test suite for the login guard app.

Covers the honeypot verifier and secret rotation, the combined login log,
the audit-log redirect, the full login flow through the guarded login
view, user-enumeration blocking and the management command.
"""

import shutil
import tempfile
import time
from datetime import datetime
from io import StringIO
from pathlib import Path
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.http import HttpResponse
from django.test import Client, RequestFactory, SimpleTestCase, TestCase, override_settings

from .audit import (
    AuditTrail,
    MESSAGES,
    USER_LOGIN_FAILED,
    USER_UNKNOWN_LOGIN_FAILED,
    redirect_to_combined_log,
)
from .combined_log import FAILURE_MESSAGES, get_client_ip, log_failure, write_combined_log
from .forms import LOGIN_FAILED_MESSAGE
from .honeypot import (
    ACCEPTED,
    BYPASS_FIELD,
    FIELD_NAME,
    OPTION_NAME,
    HoneypotSecret,
    OptionSecretStore,
    RejectReason,
    SecretRotator,
    is_bypassed,
    verify,
)
from .middleware import StopUserEnumerationMiddleware
from .models import AuditEvent, SiteOption

NOW = 1_700_000_000
TTL = 30 * 60


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class DictStore:
    """In-memory stand-in for the option-backed secret store."""

    def __init__(self, secret=None):
        self.secret = secret
        self.writes = 0

    def get(self):
        return self.secret

    def set(self, secret):
        self.secret = secret
        self.writes += 1
        return True


class CombinedLogMixin:
    """Point the combined log at a throwaway directory for each test."""

    guard_overrides = {}

    def setUp(self):
        super().setUp()
        self.log_dir = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.log_dir, ignore_errors=True)
        self.log_file = self.log_dir / 'login.log'
        conf = {
            'COMBINED_LOG_FILE': str(self.log_file),
            'SITE_URL': 'https://example.com',
        }
        conf.update(self.guard_overrides)
        patcher = override_settings(LOGIN_GUARD=conf)
        patcher.enable()
        self.addCleanup(patcher.disable)

    def read_log(self):
        if not self.log_file.exists():
            return ''
        return self.log_file.read_text(encoding='utf-8')


# ===================================================================
# 1. Honeypot verification
# ===================================================================

class TestVerify(SimpleTestCase):
    """Order and outcome of the honeypot checks."""

    def setUp(self):
        self.secret = HoneypotSecret(prefix='aB3', generated_at=NOW)

    def test_valid_field_is_accepted(self):
        outcome = verify('aB3xyz', self.secret, now=NOW + 60, ttl=TTL)
        self.assertEqual(outcome, ACCEPTED)
        self.assertTrue(outcome)
        self.assertIsNone(outcome.reason)

    def test_suffix_is_never_checked(self):
        for suffix in ('000', '!!!', '   ', 'aB3'):
            self.assertTrue(verify('aB3' + suffix, self.secret, now=NOW, ttl=TTL))

    def test_missing_field(self):
        outcome = verify(None, self.secret, now=NOW, ttl=TTL)
        self.assertFalse(outcome)
        self.assertEqual(outcome.reason, RejectReason.FIELD_MISSING_OR_EMPTY)

    def test_empty_field(self):
        outcome = verify('', self.secret, now=NOW, ttl=TTL)
        self.assertEqual(outcome.reason, RejectReason.FIELD_MISSING_OR_EMPTY)

    def test_wrong_length_even_with_matching_prefix(self):
        """Length is checked before the prefix, so a right prefix still fails."""
        for value in ('aB3', 'aB3xy', 'aB3xyz1', 'aB3' + 'x' * 20):
            self.assertEqual(verify(value, self.secret, now=NOW, ttl=TTL).reason,
                             RejectReason.WRONG_LENGTH)

    def test_length_counts_characters_not_bytes(self):
        """Six multi-byte characters are six characters."""
        secret = HoneypotSecret(prefix='äöü', generated_at=NOW)
        self.assertTrue(verify('äöüßéè', secret, now=NOW, ttl=TTL))
        self.assertEqual(verify('aB3éè', self.secret, now=NOW, ttl=TTL).reason,
                         RejectReason.WRONG_LENGTH)

    def test_fresh_secret_is_never_expired(self):
        for age in (0, 1, TTL - 1, TTL):
            outcome = verify('zzzzzz', self.secret, now=NOW + age, ttl=TTL)
            self.assertEqual(outcome.reason, RejectReason.PREFIX_MISMATCH)

    def test_stale_secret_is_expired_regardless_of_content(self):
        for value in ('aB3xyz', 'zzzzzz'):
            outcome = verify(value, self.secret, now=NOW + TTL + 1, ttl=TTL)
            self.assertEqual(outcome.reason, RejectReason.PREFIX_EXPIRED)

    def test_missing_secret_counts_as_expired(self):
        self.assertEqual(verify('aB3xyz', None, now=NOW, ttl=TTL).reason,
                         RejectReason.PREFIX_EXPIRED)

    def test_prefix_is_case_sensitive(self):
        self.assertEqual(verify('ab3xyz', self.secret, now=NOW, ttl=TTL).reason,
                         RejectReason.PREFIX_MISMATCH)

    def test_verify_is_deterministic(self):
        first = verify('aB9xyz', self.secret, now=NOW, ttl=TTL)
        second = verify('aB9xyz', self.secret, now=NOW, ttl=TTL)
        self.assertEqual(first, second)

    def test_bypass_field(self):
        self.assertTrue(is_bypassed({BYPASS_FIELD: 'nonce'}))
        self.assertTrue(is_bypassed({BYPASS_FIELD: ''}))
        self.assertFalse(is_bypassed({FIELD_NAME: 'aB3xyz'}))


class TestHoneypotSecret(SimpleTestCase):

    def test_option_round_trip_shape(self):
        secret = HoneypotSecret(prefix='Xy1', generated_at=NOW)
        self.assertEqual(secret.as_option(), {'generated': NOW, 'prefix': 'Xy1'})
        self.assertEqual(HoneypotSecret.from_option(secret.as_option()), secret)

    def test_malformed_option_values(self):
        for value in (None, '', [], {'prefix': 'abc'}, {'generated': NOW},
                      {'generated': 'soon', 'prefix': 'abc'}, {'generated': NOW, 'prefix': ''}):
            self.assertIsNone(HoneypotSecret.from_option(value))

    def test_expiry_boundary(self):
        secret = HoneypotSecret(prefix='Xy1', generated_at=NOW)
        self.assertFalse(secret.is_expired(NOW + TTL, TTL))
        self.assertTrue(secret.is_expired(NOW + TTL + 1, TTL))


# ===================================================================
# 2. Secret rotation
# ===================================================================

class TestSecretRotator(SimpleTestCase):

    def _rotator(self, store, now=NOW):
        return SecretRotator(store, ttl=TTL, clock=lambda: now)

    def test_creates_secret_when_absent(self):
        store = DictStore()
        secret = self._rotator(store).get_or_rotate()
        self.assertEqual(len(secret.prefix), 3)
        self.assertTrue(secret.prefix.isalnum())
        self.assertEqual(secret.generated_at, NOW)
        self.assertEqual(store.secret, secret)

    def test_same_secret_within_ttl(self):
        store = DictStore()
        first = self._rotator(store).get_or_rotate()
        second = self._rotator(store, now=NOW + TTL - 1).get_or_rotate()
        self.assertEqual(first, second)
        self.assertEqual(store.writes, 1)

    def test_stale_secret_is_replaced(self):
        stale = HoneypotSecret(prefix='old', generated_at=NOW - 31 * 60)
        store = DictStore(stale)
        with mock.patch('loginguard.honeypot.generate_token', return_value='NeW'):
            fresh = self._rotator(store).get_or_rotate()
        self.assertEqual(fresh.prefix, 'NeW')
        self.assertEqual(fresh.generated_at, NOW)
        self.assertNotEqual(fresh.generated_at, stale.generated_at)
        self.assertEqual(store.secret, fresh)

    def test_reset_ignores_ttl(self):
        current = HoneypotSecret(prefix='cur', generated_at=NOW)
        store = DictStore(current)
        with mock.patch('loginguard.honeypot.generate_token', return_value='rst'):
            secret = self._rotator(store).reset()
        self.assertEqual(secret.prefix, 'rst')
        self.assertEqual(store.writes, 1)

    @override_settings(LOGIN_GUARD={'HONEYPOT_TTL': 60})
    def test_ttl_from_settings(self):
        self.assertEqual(SecretRotator(DictStore()).ttl, 60)


class TestOptionSecretStore(TestCase):

    def test_get_when_absent(self):
        self.assertIsNone(OptionSecretStore().get())

    def test_set_then_get(self):
        store = OptionSecretStore()
        secret = HoneypotSecret(prefix='Qq1', generated_at=NOW)
        self.assertTrue(store.set(secret))
        self.assertEqual(store.get(), secret)
        self.assertEqual(SiteOption.objects.get(name=OPTION_NAME).value,
                         {'generated': NOW, 'prefix': 'Qq1'})

    def test_set_overwrites_single_slot(self):
        store = OptionSecretStore()
        store.set(HoneypotSecret(prefix='one', generated_at=NOW))
        store.set(HoneypotSecret(prefix='two', generated_at=NOW + 1))
        self.assertEqual(SiteOption.objects.filter(name=OPTION_NAME).count(), 1)
        self.assertEqual(store.get().prefix, 'two')

    def test_malformed_value_reads_as_absent(self):
        SiteOption.objects.create(name=OPTION_NAME, value={'prefix': 'abc'})
        self.assertIsNone(OptionSecretStore().get())


# ===================================================================
# 3. Combined login log
# ===================================================================

class TestCombinedLog(CombinedLogMixin, SimpleTestCase):

    def setUp(self):
        super().setUp()
        self.factory = RequestFactory()

    def test_exact_line_format(self):
        request = self.factory.post('/accounts/login/', REMOTE_ADDR='203.0.113.5')
        wrote = write_combined_log('honeypot_lenght', request, now=datetime(2024, 1, 2, 3, 4, 5))
        self.assertTrue(wrote)
        self.assertEqual(
            self.read_log(),
            '2024-01-02 03:04:05 client: 203.0.113.5, honeypot_lenght, site example.com\n',
        )

    def test_message_is_lowercased(self):
        request = self.factory.post('/', REMOTE_ADDR='203.0.113.5')
        write_combined_log('Failed To LOGIN', request, now=datetime(2024, 1, 2, 3, 4, 5))
        self.assertIn(', failed to login, ', self.read_log())

    def test_lines_are_appended(self):
        request = self.factory.post('/', REMOTE_ADDR='203.0.113.5')
        write_combined_log('first', request)
        write_combined_log('second', request)
        lines = self.read_log().splitlines()
        self.assertEqual(len(lines), 2)
        self.assertIn('first', lines[0])
        self.assertIn('second', lines[1])

    def test_creates_missing_file(self):
        self.assertFalse(self.log_file.exists())
        self.assertTrue(write_combined_log('hello', self.factory.get('/')))
        self.assertTrue(self.log_file.exists())

    def test_disabled_returns_false_without_touching_disk(self):
        with self.settings(LOGIN_GUARD={'WRITE_COMBINED_LOG': False,
                                        'COMBINED_LOG_FILE': str(self.log_file)}):
            self.assertFalse(write_combined_log('hello', self.factory.get('/')))
        self.assertFalse(self.log_file.exists())

    def test_unwritable_path_returns_false(self):
        missing_dir = self.log_dir / 'does' / 'not' / 'exist' / 'login.log'
        with self.settings(LOGIN_GUARD={'COMBINED_LOG_FILE': str(missing_dir)}):
            self.assertFalse(write_combined_log('hello', self.factory.get('/')))

    def test_bad_path_returns_false_without_raising(self):
        with self.settings(LOGIN_GUARD={'COMBINED_LOG_FILE': str(self.log_dir / 'bad\x00name.log')}):
            self.assertFalse(write_combined_log('hello', self.factory.get('/')))

    def test_directory_as_target_returns_false(self):
        with self.settings(LOGIN_GUARD={'COMBINED_LOG_FILE': str(self.log_dir)}):
            self.assertFalse(write_combined_log('hello', self.factory.get('/')))

    def test_site_host_falls_back_to_request_host(self):
        with self.settings(LOGIN_GUARD={'COMBINED_LOG_FILE': str(self.log_file)}):
            write_combined_log('hello', self.factory.get('/'))
        self.assertTrue(self.read_log().endswith(', site testserver\n'))

    def test_ipv6_request_host(self):
        conf = {'COMBINED_LOG_FILE': str(self.log_file)}
        with self.settings(LOGIN_GUARD=conf, ALLOWED_HOSTS=['[::1]']):
            write_combined_log('first', self.factory.get('/', HTTP_HOST='[::1]'))
            write_combined_log('second', self.factory.get('/', HTTP_HOST='[::1]:8000'))
        lines = self.read_log().splitlines()
        self.assertTrue(lines[0].endswith(', site [::1]'))
        self.assertTrue(lines[1].endswith(', site [::1]'))

    def test_newlines_in_message_stay_on_one_line(self):
        request = self.factory.post('/', REMOTE_ADDR='203.0.113.5')
        write_combined_log('user "eve\r\n2024-01-01 00:00:00 client: 10.0.0.1, fake', request,
                           now=datetime(2024, 1, 2, 3, 4, 5))
        self.assertEqual(
            self.read_log(),
            '2024-01-02 03:04:05 client: 203.0.113.5, '
            'user "eve 2024-01-01 00:00:00 client: 10.0.0.1, fake, site example.com\n',
        )

    def test_failure_messages_cover_every_reason(self):
        self.assertEqual(set(FAILURE_MESSAGES), set(RejectReason))

    def test_log_failure_asks_to_suppress_audit(self):
        request = self.factory.post('/', REMOTE_ADDR='198.51.100.7')
        result = log_failure(RejectReason.WRONG_LENGTH, request)
        self.assertTrue(result.wrote)
        self.assertTrue(result.suppress_audit)
        self.assertIn('client: 198.51.100.7, failed to login (honeypot length), site example.com',
                      self.read_log())

    def test_log_failure_accepts_reason_value(self):
        result = log_failure('prefix_mismatch', self.factory.get('/'))
        self.assertTrue(result.wrote)
        self.assertIn('honeypot wrong prefix', self.read_log())

    def test_log_failure_without_write_keeps_audit(self):
        with self.settings(LOGIN_GUARD={'WRITE_COMBINED_LOG': False}):
            result = log_failure(RejectReason.PREFIX_EXPIRED, self.factory.get('/'))
        self.assertFalse(result.wrote)
        self.assertFalse(result.suppress_audit)


class TestClientIp(SimpleTestCase):
    """Client-IP wins over X-Forwarded-For, which wins over the peer address."""

    def setUp(self):
        self.factory = RequestFactory()

    def test_client_ip_header_first(self):
        request = self.factory.get('/', HTTP_CLIENT_IP='192.0.2.1',
                                   HTTP_X_FORWARDED_FOR='192.0.2.2', REMOTE_ADDR='192.0.2.3')
        self.assertEqual(get_client_ip(request), '192.0.2.1')

    def test_forwarded_for_second(self):
        request = self.factory.get('/', HTTP_X_FORWARDED_FOR='192.0.2.2', REMOTE_ADDR='192.0.2.3')
        self.assertEqual(get_client_ip(request), '192.0.2.2')

    def test_empty_headers_are_skipped(self):
        request = self.factory.get('/', HTTP_CLIENT_IP='', HTTP_X_FORWARDED_FOR='',
                                   REMOTE_ADDR='192.0.2.3')
        self.assertEqual(get_client_ip(request), '192.0.2.3')

    def test_no_request(self):
        self.assertEqual(get_client_ip(None), '')


# ===================================================================
# 4. Audit-log redirect and audit trail
# ===================================================================

class TestRedirectToCombinedLog(CombinedLogMixin, TestCase):

    def test_unknown_user_event_is_redirected(self):
        context = {'_message_key': USER_UNKNOWN_LOGIN_FAILED, 'failed_username': 'bob'}
        should_log = redirect_to_combined_log(True, 'warning', MESSAGES[USER_UNKNOWN_LOGIN_FAILED], context)
        self.assertFalse(should_log)
        self.assertIn('failed to login with username "bob" (username does not exist)', self.read_log())
        self.assertNotIn('{failed_username}', self.read_log())

    def test_key_not_in_allowlist_passes_through(self):
        context = {'_message_key': USER_LOGIN_FAILED, 'login': 'alice'}
        self.assertTrue(redirect_to_combined_log(True, 'warning', 'msg', context))
        self.assertFalse(redirect_to_combined_log(False, 'warning', 'msg', context))
        self.assertEqual(self.read_log(), '')

    def test_no_message_key_passes_through(self):
        self.assertTrue(redirect_to_combined_log(True, 'info', 'msg', {'failed_username': 'bob'}))
        self.assertEqual(self.read_log(), '')

    def test_key_switched_off_passes_through(self):
        with self.settings(LOGIN_GUARD={
            'COMBINED_LOG_FILE': str(self.log_file),
            'AUDIT_KEYS_TO_COMBINED_LOG': {USER_UNKNOWN_LOGIN_FAILED: False},
        }):
            context = {'_message_key': USER_UNKNOWN_LOGIN_FAILED, 'failed_username': 'bob'}
            self.assertTrue(redirect_to_combined_log(True, 'warning', 'msg', context))
        self.assertEqual(self.read_log(), '')

    def test_login_placeholder_is_filled(self):
        with self.settings(LOGIN_GUARD={
            'COMBINED_LOG_FILE': str(self.log_file),
            'AUDIT_KEYS_TO_COMBINED_LOG': {USER_LOGIN_FAILED: True},
        }):
            context = {'_message_key': USER_LOGIN_FAILED, 'login': 'alice'}
            self.assertFalse(redirect_to_combined_log(True, 'warning', MESSAGES[USER_LOGIN_FAILED], context))
        self.assertIn('username "alice" (incorrect password entered)', self.read_log())

    def test_write_failure_keeps_original_decision(self):
        with self.settings(LOGIN_GUARD={'WRITE_COMBINED_LOG': False}):
            context = {'_message_key': USER_UNKNOWN_LOGIN_FAILED, 'failed_username': 'bob'}
            self.assertTrue(redirect_to_combined_log(True, 'warning', 'msg', context))


class TestAuditTrail(CombinedLogMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.factory = RequestFactory()

    def test_redirected_event_is_not_stored(self):
        event = AuditTrail.from_settings().log_event(
            USER_UNKNOWN_LOGIN_FAILED, context={'failed_username': 'bob'},
        )
        self.assertIsNone(event)
        self.assertEqual(AuditEvent.objects.count(), 0)
        self.assertIn('"bob"', self.read_log())

    def test_other_events_are_stored(self):
        request = self.factory.post('/', REMOTE_ADDR='192.0.2.9')
        event = AuditTrail.from_settings().log_event(
            USER_LOGIN_FAILED, level='warning', context={'login': 'alice'}, request=request,
        )
        self.assertIsNotNone(event)
        self.assertEqual(event.message_key, USER_LOGIN_FAILED)
        self.assertEqual(event.ip_address, '192.0.2.9')
        self.assertEqual(event.username, 'alice')
        self.assertEqual(event.rendered_message,
                         'Failed to login with username "alice" (incorrect password entered)')

    def test_interceptors_are_injected(self):
        calls = []

        def veto(should_log, level, message, context, request=None):
            calls.append(context['_message_key'])
            return False

        self.assertIsNone(AuditTrail([veto]).log_event(USER_LOGIN_FAILED, context={'login': 'x'}))
        self.assertEqual(calls, [USER_LOGIN_FAILED])
        self.assertEqual(AuditEvent.objects.count(), 0)

    def test_no_interceptors_stores_everything(self):
        AuditTrail().log_event(USER_UNKNOWN_LOGIN_FAILED, context={'failed_username': 'bob'})
        self.assertEqual(AuditEvent.objects.count(), 1)
        self.assertEqual(self.read_log(), '')


# ===================================================================
# 5. Login flow
# ===================================================================

class TestLoginFlow(CombinedLogMixin, TestCase):
    """End-to-end through /accounts/login/ with the honeypot backend first."""

    PASSWORD = 'correct-horse-battery-42'

    def setUp(self):
        super().setUp()
        self.client = Client()
        self.user = get_user_model().objects.create_user(username='alice', password=self.PASSWORD)
        self.store = OptionSecretStore()
        self.store.set(HoneypotSecret(prefix='Qq1', generated_at=int(time.time())))

    def _post(self, username='alice', password=None, honeypot='Qq1xyz', **extra):
        data = {'username': username, 'password': password or self.PASSWORD}
        if honeypot is not None:
            data[FIELD_NAME] = honeypot
        data.update(extra)
        return self.client.post('/accounts/login/', data)

    def _assert_rejected(self, resp):
        self.assertEqual(resp.status_code, 200)
        self.assertIn(str(LOGIN_FAILED_MESSAGE), resp.content.decode())
        self.assertNotIn('_auth_user_id', self.client.session)

    def test_login_page_renders_current_prefix(self):
        resp = self.client.get('/accounts/login/')
        self.assertEqual(resp.status_code, 200)
        content = resp.content.decode()
        self.assertIn('value="Qq1"', content)
        self.assertIn('Append three letters to this input', content)
        self.assertIn("style.display = 'none'", content)

    def test_login_page_creates_missing_secret(self):
        SiteOption.objects.all().delete()
        self.client.get('/accounts/login/')
        self.assertIsNotNone(self.store.get())

    def test_login_page_rotates_stale_secret(self):
        self.store.set(HoneypotSecret(prefix='old', generated_at=int(time.time()) - 31 * 60))
        with mock.patch('loginguard.honeypot.generate_token', return_value='NeW'):
            self.client.get('/accounts/login/')
        self.assertEqual(self.store.get().prefix, 'NeW')

    def test_valid_honeypot_and_credentials_log_in(self):
        resp = self._post()
        self.assertEqual(resp.status_code, 302)
        self.assertEqual(int(self.client.session['_auth_user_id']), self.user.pk)
        self.assertEqual(self.read_log(), '')

    def test_successful_login_resets_secret(self):
        with mock.patch('loginguard.honeypot.generate_token', return_value='NeW'):
            self._post()
        self.assertEqual(self.store.get().prefix, 'NeW')
        self.assertTrue(AuditEvent.objects.filter(message_key='user_logged_in').exists())

    def test_missing_honeypot(self):
        self._assert_rejected(self._post(honeypot=None))
        self.assertIn('client: 127.0.0.1, failed to login (honeypot empty), site example.com',
                      self.read_log())

    def test_empty_honeypot(self):
        self._assert_rejected(self._post(honeypot=''))
        self.assertIn('failed to login (honeypot empty)', self.read_log())

    def test_wrong_length_honeypot(self):
        self._assert_rejected(self._post(honeypot='Qq1xyzw'))
        self.assertIn('failed to login (honeypot length)', self.read_log())

    def test_wrong_prefix_honeypot(self):
        self._assert_rejected(self._post(honeypot='zzzxyz'))
        self.assertIn('failed to login (honeypot wrong prefix)', self.read_log())

    def test_expired_prefix(self):
        self.store.set(HoneypotSecret(prefix='Qq1', generated_at=int(time.time()) - 31 * 60))
        self._assert_rejected(self._post())
        self.assertIn('failed to login (honeypot old prefix)', self.read_log())

    def test_honeypot_failure_is_not_audited_twice(self):
        self._post(honeypot='zzzxyz')
        self.assertEqual(len(self.read_log().splitlines()), 1)
        self.assertEqual(AuditEvent.objects.count(), 0)

    def test_honeypot_failure_is_audited_when_combined_log_is_off(self):
        with self.settings(LOGIN_GUARD={'WRITE_COMBINED_LOG': False}):
            self._assert_rejected(self._post(honeypot='zzzxyz'))
        self.assertEqual(AuditEvent.objects.filter(message_key=USER_LOGIN_FAILED).count(), 1)

    def test_wrong_password_goes_to_audit_trail(self):
        self._assert_rejected(self._post(password='wrong-password'))
        event = AuditEvent.objects.get()
        self.assertEqual(event.message_key, USER_LOGIN_FAILED)
        self.assertEqual(event.username, 'alice')
        self.assertEqual(self.read_log(), '')

    def test_unknown_user_goes_to_combined_log(self):
        self._assert_rejected(self._post(username='mallory'))
        self.assertIn('failed to login with username "mallory" (username does not exist)',
                      self.read_log())
        self.assertEqual(AuditEvent.objects.count(), 0)

    def test_newline_in_username_cannot_forge_log_lines(self):
        forged = 'mallory\n2024-01-01 00:00:00 client: 10.0.0.1, forged entry, site example.com'
        self._assert_rejected(self._post(username=forged))
        lines = self.read_log().splitlines()
        self.assertEqual(len(lines), 1)
        self.assertIn('username "mallory 2024-01-01 00:00:00 client: 10.0.0.1, forged entry', lines[0])

    def test_unknown_user_audited_when_combined_log_is_off(self):
        with self.settings(LOGIN_GUARD={'WRITE_COMBINED_LOG': False}):
            self._post(username='mallory')
        event = AuditEvent.objects.get()
        self.assertEqual(event.message_key, USER_UNKNOWN_LOGIN_FAILED)
        self.assertEqual(event.username, 'mallory')

    def test_bypass_field_skips_honeypot(self):
        resp = self._post(honeypot=None, **{BYPASS_FIELD: 'abc123'})
        self.assertEqual(resp.status_code, 302)
        self.assertIn('_auth_user_id', self.client.session)
        self.assertEqual(self.read_log(), '')

    def test_error_message_is_the_same_for_every_failure(self):
        pages = [
            self._post(honeypot=None),
            self._post(honeypot='zzzxyz'),
            self._post(password='wrong-password'),
            self._post(username='mallory'),
        ]
        for resp in pages:
            self._assert_rejected(resp)
            self.assertNotIn('honeypot', resp.content.decode().split('<form')[0].lower())

    def test_programmatic_login_is_not_blocked(self):
        """authenticate() without a form post never sees the honeypot."""
        self.assertTrue(self.client.login(username='alice', password=self.PASSWORD))
        self.assertEqual(self.read_log(), '')

    def test_admin_login_goes_to_guarded_form(self):
        resp = self.client.get('/admin/login/?next=/admin/')
        self.assertEqual(resp.status_code, 302)
        self.assertTrue(resp.url.startswith('/accounts/login/'))


# ===================================================================
# 6. User enumeration
# ===================================================================

class TestStopUserEnumeration(TestCase):

    def setUp(self):
        self.client = Client()
        self.factory = RequestFactory()
        self.middleware = StopUserEnumerationMiddleware(lambda request: HttpResponse('ok'))

    def test_author_query_redirects_home(self):
        resp = self.client.get('/accounts/login/?author=1')
        self.assertEqual(resp.status_code, 302)
        self.assertEqual(resp.url, '/')

    def test_empty_author_is_ignored(self):
        resp = self.client.get('/accounts/login/?author=')
        self.assertEqual(resp.status_code, 200)

    def test_author_in_post_body_redirects(self):
        resp = self.middleware(self.factory.post(
            '/some/page/', 'author=2', content_type='application/x-www-form-urlencoded',
        ))
        self.assertEqual(resp.status_code, 302)

    def test_admin_is_exempt(self):
        resp = self.middleware(self.factory.get('/admin/auth/user/', {'author': '1'}))
        self.assertEqual(resp.status_code, 200)

    def test_comment_posts_are_exempt(self):
        resp = self.middleware(self.factory.post(
            '/wp-comments-post.php', 'author=Jane', content_type='application/x-www-form-urlencoded',
        ))
        self.assertEqual(resp.status_code, 200)

    def test_multipart_body_is_left_for_the_view(self):
        def view(request):
            request.body
            return HttpResponse('ok')

        middleware = StopUserEnumerationMiddleware(view)
        resp = middleware(self.factory.post('/upload/', {'author': '1'}))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.content, b'ok')

    @override_settings(LOGIN_GUARD={'HOME_URL': '/welcome/'})
    def test_redirect_target_is_configurable(self):
        resp = self.middleware(self.factory.get('/blog/', {'author': '1'}))
        self.assertEqual(resp.url, '/welcome/')


# ===================================================================
# 7. Management command
# ===================================================================

class TestRotateHoneypotCommand(TestCase):

    def test_command_rotates_secret(self):
        store = OptionSecretStore()
        store.set(HoneypotSecret(prefix='old', generated_at=NOW))
        out = StringIO()
        with mock.patch('loginguard.honeypot.generate_token', return_value='cmd'):
            call_command('rotate_honeypot', stdout=out)
        self.assertEqual(store.get().prefix, 'cmd')
        self.assertIn('Honeypot prefix rotated at', out.getvalue())
        self.assertNotIn('cmd', out.getvalue())
