"""Tests for medcore_basemodels: optimistic locking, validators and helpers."""
from datetime import date, datetime, timezone as dt_timezone
from unittest import mock

import pytest
from django.core.exceptions import ValidationError
from django.db import OperationalError

from medcore_basemodels.concurrency import (
    apply_lock_timeout,
    backoff_delay,
    get_lock_timeout_ms,
    is_lock_contention,
    sleep_before_retry,
)
from medcore_basemodels.exceptions import (
    ContentionError,
    MedcoreError,
    StaleVersionError,
)
from medcore_basemodels.utils import actor_ref, as_date
from medcore_basemodels.validators import validate_extension_map


@pytest.mark.django_db
class TestOptimisticLock:
    """cas_update() only writes when lock_version is unchanged."""

    def test_cas_update_bumps_version(self, make_prescription):
        prescription = make_prescription()
        assert prescription.lock_version == 0

        prescription.cas_update(notes='Twice daily')

        prescription.refresh_from_db()
        assert prescription.notes == 'Twice daily'
        assert prescription.lock_version == 1

    def test_stale_instance_is_rejected(self, make_prescription):
        from medcore_erx.models import Prescription

        prescription = make_prescription()
        stale = Prescription.objects.get(pk=prescription.pk)

        prescription.cas_update(notes='first writer')

        with pytest.raises(StaleVersionError) as exc_info:
            stale.cas_update(notes='second writer')

        assert exc_info.value.expected_version == 0
        assert exc_info.value.retryable is True
        prescription.refresh_from_db()
        assert prescription.notes == 'first writer'

    def test_stale_version_is_contention(self):
        assert issubclass(StaleVersionError, ContentionError)
        assert issubclass(ContentionError, MedcoreError)


class TestExtensionMap:
    """validate_extension_map() accepts only string keys and scalar values."""

    def test_scalars_are_accepted(self):
        validate_extension_map({'channel': 'app', 'priority': 2, 'vip': True, 'score': 1.5, 'none': None})

    def test_nested_values_are_rejected(self):
        with pytest.raises(ValidationError):
            validate_extension_map({'address': {'city': 'Pune'}})

    def test_lists_are_rejected(self):
        with pytest.raises(ValidationError):
            validate_extension_map({'tags': ['a', 'b']})

    def test_non_dict_is_rejected(self):
        with pytest.raises(ValidationError):
            validate_extension_map(['not', 'a', 'map'])

    def test_empty_key_is_rejected(self):
        with pytest.raises(ValidationError):
            validate_extension_map({'': 'x'})


class TestConcurrencyHelpers:
    """Lock-error classification and backoff."""

    def test_sqlite_lock_is_contention(self):
        assert is_lock_contention(OperationalError('database is locked'))
        assert is_lock_contention(OperationalError('database table is locked: x'))

    def test_postgres_lock_timeout_is_contention(self):
        assert is_lock_contention(OperationalError('canceling statement due to lock timeout'))

    def test_other_errors_are_not_contention(self):
        assert not is_lock_contention(OperationalError('no such table: foo'))
        assert not is_lock_contention(ValueError('database is locked'))

    def test_backoff_grows_exponentially(self):
        with mock.patch('medcore_basemodels.concurrency.random.random', return_value=0.5):
            assert backoff_delay(0, 0.1) == pytest.approx(0.1)
            assert backoff_delay(3, 0.1) == pytest.approx(0.8)

    def test_zero_base_does_not_sleep(self):
        with mock.patch('medcore_basemodels.concurrency.time.sleep') as sleep:
            sleep_before_retry(2, 0)
        sleep.assert_not_called()

    def test_lock_timeout_skipped_outside_postgres(self):
        connection = mock.Mock(vendor='sqlite')
        apply_lock_timeout(connection, 2000)
        connection.cursor.assert_not_called()

    def test_lock_timeout_set_on_postgres(self):
        connection = mock.MagicMock(vendor='postgresql')
        apply_lock_timeout(connection, 1500)
        cursor = connection.cursor.return_value.__enter__.return_value
        cursor.execute.assert_called_once_with("SET LOCAL lock_timeout = 1500")

    def test_lock_timeout_setting(self, settings):
        assert get_lock_timeout_ms() == 2000
        settings.MEDCORE_LOCK_TIMEOUT_MS = 500
        assert get_lock_timeout_ms() == 500


class TestUtils:
    """actor_ref() and as_date()."""

    def test_actor_ref_variants(self):
        user = mock.Mock(pk=42)
        assert actor_ref(user) == '42'
        assert actor_ref('DR1') == 'DR1'
        assert actor_ref(None) == ''

    def test_as_date(self):
        assert as_date(date(2025, 6, 1)) == date(2025, 6, 1)
        assert as_date(datetime(2025, 6, 1, 23, 30, tzinfo=dt_timezone.utc)) == date(2025, 6, 1)
        assert as_date(datetime(2025, 6, 1, 10, 0)) == date(2025, 6, 1)
