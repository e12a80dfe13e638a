"""Tests for document-number allocation."""
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime, timezone as dt_timezone
from unittest import mock

import pytest
from django.db import DatabaseError, OperationalError, connection

from medcore_sequence.exceptions import (
    AllocationExhausted,
    AllocatorUnavailable,
    InvalidDocumentNumber,
    InvalidPrefix,
)
from medcore_sequence.models import SequencePartition
from medcore_sequence.services import (
    allocate,
    current_value,
    format_document_number,
    parse_document_number,
    partition_key,
)

JUNE_1 = date(2025, 6, 1)


class TestDocumentNumberFormat:
    """Formatting and parsing of PREFIX + YYMMDD + sequence."""

    def test_format(self):
        assert format_document_number('APT', JUNE_1, 1) == 'APT2506010001'
        assert format_document_number('pay', JUNE_1, 42) == 'PAY2506010042'

    def test_pad_width_is_a_minimum(self):
        assert format_document_number('APT', JUNE_1, 12345) == 'APT25060112345'

    def test_pad_width_setting(self, settings):
        settings.MEDCORE_SEQUENCE_PAD_WIDTH = 6
        assert format_document_number('MEM', JUNE_1, 7) == 'MEM250601000007'

    def test_partition_key(self):
        assert partition_key('apt', JUNE_1) == 'APT250601'

    def test_parse(self):
        assert parse_document_number('APT2506010003') == ('APT', JUNE_1, 3)
        assert parse_document_number('MEM25060112345') == ('MEM', JUNE_1, 12345)

    @pytest.mark.parametrize('value', ['', 'APT', 'APT25060', 'apt2506010001', 'APT2513010001'])
    def test_parse_rejects_malformed(self, value):
        with pytest.raises(InvalidDocumentNumber):
            parse_document_number(value)

    @pytest.mark.parametrize('prefix', ['', 'A1', 'TOOLONGPREFIX', None])
    def test_invalid_prefix(self, prefix):
        with pytest.raises(InvalidPrefix):
            partition_key(prefix, JUNE_1)


@pytest.mark.django_db
class TestAllocate:
    """allocate() issues gap-free numbers per prefix+date partition."""

    def test_first_allocation_starts_at_one(self):
        assert allocate('APT', JUNE_1) == 'APT2506010001'
        assert current_value('APT', JUNE_1) == 1

    def test_sequential_allocations(self):
        numbers = [allocate('APT', JUNE_1) for _ in range(3)]
        assert numbers == ['APT2506010001', 'APT2506010002', 'APT2506010003']

    def test_partitions_are_independent(self):
        allocate('APT', JUNE_1)
        allocate('APT', JUNE_1)

        assert allocate('PAY', JUNE_1) == 'PAY2506010001'
        assert allocate('APT', date(2025, 6, 2)) == 'APT2506020001'
        assert current_value('APT', JUNE_1) == 2

    def test_accepts_aware_datetime(self):
        moment = datetime(2025, 6, 1, 23, 59, tzinfo=dt_timezone.utc)
        assert allocate('APT', moment) == 'APT2506010001'

    def test_current_value_without_partition(self):
        assert current_value('APT', JUNE_1) == 0

    def test_rolled_back_transaction_reuses_number(self):
        from django.db import transaction

        with pytest.raises(RuntimeError):
            with transaction.atomic():
                allocate('APT', JUNE_1)
                raise RuntimeError("abort booking")

        assert allocate('APT', JUNE_1) == 'APT2506010001'

    def test_lock_contention_retries_then_succeeds(self):
        from medcore_sequence import services

        real_increment = services._increment
        calls = {'n': 0}

        def flaky(*args):
            calls['n'] += 1
            if calls['n'] == 1:
                raise OperationalError('database is locked')
            return real_increment(*args)

        with mock.patch.object(services, '_increment', side_effect=flaky):
            assert allocate('APT', JUNE_1) == 'APT2506010001'
        assert calls['n'] == 2

    def test_exhausted_after_max_attempts(self, settings):
        settings.MEDCORE_SEQUENCE_MAX_ATTEMPTS = 3
        from medcore_sequence import services

        with mock.patch.object(services, '_increment', side_effect=OperationalError('database is locked')) as inc:
            with pytest.raises(AllocationExhausted) as exc_info:
                allocate('APT', JUNE_1)

        assert inc.call_count == 3
        assert exc_info.value.partition == 'APT250601'
        assert exc_info.value.retryable is True

    def test_store_failure_is_unavailable_not_fabricated(self):
        from medcore_sequence import services

        with mock.patch.object(services, '_increment', side_effect=DatabaseError('connection refused')):
            with pytest.raises(AllocatorUnavailable) as exc_info:
                allocate('APT', JUNE_1)

        assert exc_info.value.retryable is True
        assert not SequencePartition.objects.exists()


@pytest.mark.django_db(transaction=True)
class TestAllocateConcurrency:
    """Concurrent callers for one partition never share a number."""

    def test_three_concurrent_allocations(self, settings):
        settings.MEDCORE_SEQUENCE_MAX_ATTEMPTS = 50
        settings.MEDCORE_SEQUENCE_BACKOFF_SECONDS = 0.005

        def allocate_one():
            try:
                return allocate('APT', JUNE_1)
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=3) as executor:
            futures = [executor.submit(allocate_one) for _ in range(3)]
            results = [future.result() for future in as_completed(futures)]

        assert sorted(results) == ['APT2506010001', 'APT2506010002', 'APT2506010003']
        assert current_value('APT', JUNE_1) == 3

    def test_many_concurrent_allocations_are_gap_free(self, settings):
        settings.MEDCORE_SEQUENCE_MAX_ATTEMPTS = 100
        settings.MEDCORE_SEQUENCE_BACKOFF_SECONDS = 0.005

        def allocate_one():
            try:
                return parse_document_number(allocate('PAY', JUNE_1))[2]
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=5) as executor:
            values = list(executor.map(lambda _: allocate_one(), range(10)))

        assert sorted(values) == list(range(1, 11))
