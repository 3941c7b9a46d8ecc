import os
import re
import sys
import random
import threading
import unittest
import warnings
from unittest.mock import MagicMock, patch

# Add project root to Python path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from common.errors import AllocationDegraded
from invoicing import id_generators
from invoicing.id_generators import (
    AWB_REGEX,
    allocate_invoice_number,
    allocate_tracking_identifier,
    allocate_unique_invoice_number,
    allocate_unique_tracking_identifier,
)
from empost_fakes import InMemoryCounter

AWB_RE = re.compile(AWB_REGEX)
FIXED_TIME = 1700000000.5  # 1700000000500 ms


class TestTrackingIdentifier(unittest.TestCase):

    def test_generated_numbers_match_pattern(self):
        rng = random.Random(1)
        for _ in range(500):
            self.assertRegex(allocate_tracking_identifier(rng=rng), AWB_RE)

    def test_prefix_is_used_for_first_three_characters(self):
        rng = random.Random(2)
        for _ in range(50):
            awb = allocate_tracking_identifier('PHL', rng=rng)
            self.assertTrue(awb.startswith('PHL'))
            self.assertRegex(awb, AWB_RE)

    def test_prefix_is_cleaned_and_padded(self):
        awb = allocate_tracking_identifier('p-1', rng=random.Random(3))
        self.assertEqual(awb[0], 'P')
        self.assertRegex(awb, AWB_RE)

    def test_long_prefix_is_truncated(self):
        awb = allocate_tracking_identifier('abcdef', rng=random.Random(4))
        self.assertTrue(awb.startswith('ABC'))
        self.assertEqual(len(awb), 15)

    def test_unique_allocation_skips_existing_values_with_forced_collisions(self):
        """
        The PRNG is seeded so the first 50 candidates are exactly the values
        already in the store; every allocation must step past them.
        """
        seed_rng = random.Random(7)
        existing = {allocate_tracking_identifier('PHL', rng=seed_rng) for _ in range(50)}
        rng = random.Random(7)
        exists_fn = MagicMock(side_effect=lambda value: value in existing)

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            for _ in range(120):
                awb = allocate_unique_tracking_identifier(exists_fn, prefix='PHL', rng=rng)
                self.assertNotIn(awb, existing)
                self.assertRegex(awb, AWB_RE)
                existing.add(awb)

        self.assertEqual(len(existing), 170)
        self.assertGreater(exists_fn.call_count, 120)
        self.assertFalse([w for w in caught if issubclass(w.category, AllocationDegraded)])

    @patch('invoicing.id_generators.time.time', return_value=FIXED_TIME)
    def test_exhaustion_falls_back_to_timestamp_suffix(self, mock_time):
        exists_fn = MagicMock(return_value=True)

        with self.assertWarns(AllocationDegraded):
            with self.assertLogs('invoicing.id_generators', level='WARNING'):
                awb = allocate_unique_tracking_identifier(exists_fn, prefix='PHL', max_attempts=5,
                                                          rng=random.Random(9))

        self.assertEqual(exists_fn.call_count, 5)
        self.assertEqual(len(awb), 21)
        self.assertRegex(awb[:15], AWB_RE)
        self.assertTrue(awb.startswith('PHL'))
        self.assertTrue(awb.endswith('000500'))
        last_candidate = exists_fn.call_args[0][0]
        self.assertEqual(awb, last_candidate + '000500')

    def test_storage_errors_propagate(self):
        exists_fn = MagicMock(side_effect=RuntimeError("database is down"))
        with self.assertRaises(RuntimeError):
            allocate_unique_tracking_identifier(exists_fn)
        exists_fn.assert_called_once()


class TestInvoiceNumber(unittest.TestCase):

    def test_invoice_number_is_zero_padded(self):
        next_sequence_fn = MagicMock(return_value=42)
        self.assertEqual(allocate_invoice_number(next_sequence_fn), 'INV-000042')
        next_sequence_fn.assert_called_once_with(id_generators.INVOICE_SEQUENCE_NAME)

    def test_concurrent_allocations_are_distinct_and_increasing(self):
        counter = InMemoryCounter()
        results = []
        results_lock = threading.Lock()

        def worker():
            number = allocate_invoice_number(counter.next_sequence_value)
            with results_lock:
                results.append(number)

        threads = [threading.Thread(target=worker) for _ in range(64)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        sequence_numbers = sorted(int(number.split('-')[1]) for number in results)
        self.assertEqual(len(set(results)), 64)
        self.assertEqual(sequence_numbers, list(range(1, 65)))

    def test_unique_invoice_number_skips_taken_values(self):
        counter = InMemoryCounter()
        taken = {'INV-000001', 'INV-000002'}
        number = allocate_unique_invoice_number(lambda value: value in taken, counter.next_sequence_value)
        self.assertEqual(number, 'INV-000003')

    @patch('invoicing.id_generators.time.time', return_value=FIXED_TIME)
    def test_unique_invoice_number_fallback(self, mock_time):
        counter = InMemoryCounter()
        with self.assertWarns(AllocationDegraded):
            number = allocate_unique_invoice_number(lambda value: True, counter.next_sequence_value, max_attempts=3)
        self.assertEqual(number, 'INV-00000500')

    def test_counter_errors_propagate(self):
        next_sequence_fn = MagicMock(side_effect=RuntimeError("counter unavailable"))
        with self.assertRaises(RuntimeError):
            allocate_unique_invoice_number(MagicMock(return_value=False), next_sequence_fn)


if __name__ == '__main__':
    unittest.main()
