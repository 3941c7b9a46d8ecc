import os
import re
import sys
import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch

# Add project root to Python path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from common.errors import TransientNetworkError
from invoicing import workflow
from invoicing.id_generators import AWB_REGEX
from empost_fakes import InMemoryInvoiceStore, make_invoice


@patch('shipping.empost.sync.log_process_failure')
class TestCreateInvoice(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryInvoiceStore()
        self.api_client = MagicMock()
        self.api_client.create_shipment.return_value = 'UHAWB-001'

    @patch.dict(os.environ, {'AWB_PREFIX': 'PHL'})
    def test_allocates_identifiers_and_publishes(self, mock_log_failure):
        data = {
            'client_id': 7,
            'amount': '250.00',
            'tax_amount': '12.50',
            'line_items': [{'description': 'Laptop', 'quantity': 1, 'unit_price': '250.00', 'total': '250.00'}],
        }

        result = workflow.create_invoice(self.store, data, self.api_client)

        self.assertEqual(result['invoice_id'], 'INV-000001')
        self.assertRegex(result['awb_number'], re.compile(AWB_REGEX))
        self.assertTrue(result['awb_number'].startswith('PHL'))
        self.assertEqual(result['empost_uhawb'], 'UHAWB-001')
        self.assertEqual(result['empost_status'], 'synced')

        row = self.store.created_rows[0]
        self.assertEqual(row['total_amount'], Decimal('262.50'))
        self.assertEqual(row['status'], 'UNPAID')
        invoice = self.store.invoices[result['id']]
        self.assertEqual(invoice.line_items[0].description, 'Laptop')
        self.api_client.create_shipment.assert_called_once()
        self.api_client.issue_invoice.assert_called_once()

    def test_consecutive_invoices_get_increasing_numbers(self, mock_log_failure):
        first = workflow.create_invoice(self.store, {'client_id': 7, 'amount': 10}, self.api_client)
        second = workflow.create_invoice(self.store, {'client_id': 7, 'amount': 20}, self.api_client)
        self.assertEqual((first['invoice_id'], second['invoice_id']), ('INV-000001', 'INV-000002'))
        self.assertNotEqual(first['awb_number'], second['awb_number'])

    def test_supplied_identifiers_are_kept(self, mock_log_failure):
        result = workflow.create_invoice(
            self.store,
            {'client_id': 7, 'amount': 10, 'invoice_id': 'INV-MANUAL', 'awb_number': 'PHL2VN3KT28US9H'},
            self.api_client,
        )
        self.assertEqual(result['invoice_id'], 'INV-MANUAL')
        self.assertEqual(result['awb_number'], 'PHL2VN3KT28US9H')

    def test_duplicate_invoice_id_is_rejected(self, mock_log_failure):
        self.store.add_invoice(make_invoice())
        with self.assertRaises(ValueError):
            workflow.create_invoice(self.store, {'client_id': 7, 'amount': 10, 'invoice_id': 'INV-000101'},
                                    self.api_client)
        self.assertEqual(self.store.created_rows, [])

    def test_invalid_input_is_rejected(self, mock_log_failure):
        for data in ({'amount': 10},
                     {'client_id': 7},
                     {'client_id': 7, 'amount': 'ten'},
                     {'client_id': 7, 'amount': 10, 'status': 'LOST'},
                     {'client_id': 7, 'amount': 10, 'line_items': ['Laptop']}):
            with self.assertRaises(ValueError, msg=data):
                workflow.create_invoice(self.store, data, self.api_client)
        self.assertEqual(self.store.created_rows, [])

    def test_empost_outage_does_not_fail_creation(self, mock_log_failure):
        self.api_client.create_shipment.side_effect = TransientNetworkError("EMpost down")

        result = workflow.create_invoice(self.store, {'client_id': 7, 'amount': 10}, self.api_client)

        self.assertEqual(result['empost_status'], 'failed')
        self.assertIsNone(result['empost_uhawb'])
        self.assertIn(result['id'], self.store.invoices)
        mock_log_failure.assert_called_once()


@patch('shipping.empost.sync.log_process_failure')
class TestUpdateInvoiceStatus(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryInvoiceStore()
        self.store.add_invoice(make_invoice())
        self.api_client = MagicMock()
        self.api_client.create_shipment.return_value = 'UHAWB-001'

    def test_status_change_triggers_sync(self, mock_log_failure):
        result = workflow.update_invoice_status(self.store, 1, 'PAID', self.api_client)

        self.assertEqual(result.status, 'synced')
        self.assertEqual(self.store.invoices[1].status, 'PAID')
        synced_invoice = self.api_client.create_shipment.call_args[0][0]
        self.assertEqual(synced_invoice.status, 'PAID')

    def test_unknown_status_is_rejected(self, mock_log_failure):
        with self.assertRaises(ValueError):
            workflow.update_invoice_status(self.store, 1, 'LOST', self.api_client)
        self.api_client.create_shipment.assert_not_called()

    def test_missing_invoice_returns_none(self, mock_log_failure):
        self.assertIsNone(workflow.update_invoice_status(self.store, 404, 'PAID', self.api_client))
        self.api_client.create_shipment.assert_not_called()

    def test_sync_failure_does_not_undo_status(self, mock_log_failure):
        self.api_client.create_shipment.side_effect = TransientNetworkError("timeout")

        result = workflow.update_invoice_status(self.store, 1, 'CANCELLED', self.api_client)

        self.assertEqual(result.status, 'failed')
        self.assertEqual(self.store.invoices[1].status, 'CANCELLED')


@patch('shipping.empost.sync.log_process_failure')
class TestUpdateInvoice(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryInvoiceStore()
        self.store.add_invoice(make_invoice(empost_uhawb='UHAWB-001'))
        self.api_client = MagicMock()
        self.api_client.create_shipment.return_value = 'UHAWB-001'

    def test_edit_is_persisted_then_synced(self, mock_log_failure):
        with self.assertLogs('shipping.empost.sync', level='INFO') as logs:
            result = workflow.update_invoice(
                self.store, 1, {'amount': '300.00', 'receiver_address': '7 Marina Walk, Dubai, UAE'}, self.api_client)

        self.assertEqual(result.status, 'unchanged')
        invoice = self.store.invoices[1]
        self.assertEqual(invoice.amount, Decimal('300.00'))
        synced_invoice = self.api_client.create_shipment.call_args[0][0]
        self.assertEqual(synced_invoice.receiver_address, '7 Marina Walk, Dubai, UAE')
        self.assertTrue(any('(Invoice update)' in line for line in logs.output))

    def test_identifiers_cannot_be_edited(self, mock_log_failure):
        for changes in ({'awb_number': 'PHL0AA0AA00AA0A'}, {'invoice_id': 'INV-999999'}, {'client_id': 8}):
            with self.assertRaises(ValueError):
                workflow.update_invoice(self.store, 1, changes, self.api_client)
        self.api_client.create_shipment.assert_not_called()

    def test_invalid_values_are_rejected(self, mock_log_failure):
        for changes in ({}, {'amount': None}, {'tax_amount': 'abc'}, {'status': 'LOST'}):
            with self.assertRaises(ValueError, msg=changes):
                workflow.update_invoice(self.store, 1, changes, self.api_client)
        self.assertEqual(self.store.invoices[1].amount, Decimal('250.00'))

    def test_missing_invoice_returns_none(self, mock_log_failure):
        self.assertIsNone(workflow.update_invoice(self.store, 404, {'amount': 1}, self.api_client))
        self.api_client.create_shipment.assert_not_called()


if __name__ == '__main__':
    unittest.main()
