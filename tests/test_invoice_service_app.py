import os
import sys
import unittest
from unittest.mock import MagicMock, patch

# Add project root to Python path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from shipping.empost.sync import SyncResult
from web_interface.invoice_service_app import app


class TestInvoiceServiceApp(unittest.TestCase):

    def setUp(self):
        app.config['TESTING'] = True
        self.client = app.test_client()
        self.mock_conn = MagicMock()
        patcher = patch('web_interface.invoice_service_app.get_db_connection', return_value=self.mock_conn)
        self.mock_get_conn = patcher.start()
        self.addCleanup(patcher.stop)

    @patch('web_interface.invoice_service_app.workflow.create_invoice')
    def test_create_invoice(self, mock_create):
        mock_create.return_value = {'id': 1, 'invoice_id': 'INV-000001', 'awb_number': 'PHL2VN3KT28US9H',
                                    'empost_uhawb': 'UHAWB-001', 'empost_status': 'synced'}

        response = self.client.post('/api/invoices', json={'client_id': 7, 'amount': 10})

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()['invoice_id'], 'INV-000001')
        store, data = mock_create.call_args[0]
        self.assertIs(store.conn, self.mock_conn)
        self.assertEqual(data, {'client_id': 7, 'amount': 10})
        self.mock_conn.close.assert_called_once()

    @patch('web_interface.invoice_service_app.workflow.create_invoice')
    def test_create_invoice_validation_error(self, mock_create):
        mock_create.side_effect = ValueError("'amount' is required")

        response = self.client.post('/api/invoices', json={'client_id': 7})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error'], "'amount' is required")

    def test_create_invoice_requires_json_object(self):
        response = self.client.post('/api/invoices', data='not json', content_type='text/plain')
        self.assertEqual(response.status_code, 400)

    def test_database_unavailable(self):
        self.mock_get_conn.return_value = None
        response = self.client.post('/api/invoices', json={'client_id': 7, 'amount': 10})
        self.assertEqual(response.status_code, 503)

    @patch('web_interface.invoice_service_app.workflow.update_invoice_status')
    def test_update_status(self, mock_update):
        mock_update.return_value = SyncResult('synced', 5, 'UHAWB-5', None)

        response = self.client.put('/api/invoices/5/status', json={'status': 'PAID'})

        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body['status'], 'PAID')
        self.assertEqual(body['empost_status'], 'synced')
        self.assertEqual(body['empost_uhawb'], 'UHAWB-5')
        self.assertEqual(mock_update.call_args[0][1:], (5, 'PAID'))

    @patch('web_interface.invoice_service_app.workflow.update_invoice_status')
    def test_update_status_reports_empost_failure_in_body(self, mock_update):
        mock_update.return_value = SyncResult('failed', 5, None, RuntimeError("EMpost down"))

        response = self.client.put('/api/invoices/5/status', json={'status': 'PAID'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['empost_status'], 'failed')

    def test_update_status_requires_status(self):
        response = self.client.put('/api/invoices/5/status', json={})
        self.assertEqual(response.status_code, 400)

    @patch('web_interface.invoice_service_app.workflow.update_invoice_status')
    def test_update_status_invalid_or_missing(self, mock_update):
        mock_update.side_effect = ValueError("Unknown invoice status 'LOST'")
        self.assertEqual(self.client.put('/api/invoices/5/status', json={'status': 'LOST'}).status_code, 400)

        mock_update.side_effect = None
        mock_update.return_value = None
        self.assertEqual(self.client.put('/api/invoices/404/status', json={'status': 'PAID'}).status_code, 404)

    @patch('web_interface.invoice_service_app.workflow.update_invoice')
    def test_edit_invoice(self, mock_update):
        mock_update.return_value = SyncResult('synced', 5, 'UHAWB-6', None)

        response = self.client.put('/api/invoices/5', json={'amount': '300.00'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['empost_uhawb'], 'UHAWB-6')
        self.assertEqual(mock_update.call_args[0][1:], (5, {'amount': '300.00'}))

    @patch('web_interface.invoice_service_app.workflow.update_invoice')
    def test_edit_invoice_errors(self, mock_update):
        self.assertEqual(self.client.put('/api/invoices/5', data='x', content_type='text/plain').status_code, 400)

        mock_update.side_effect = ValueError("Fields cannot be edited: awb_number")
        self.assertEqual(self.client.put('/api/invoices/5', json={'awb_number': 'X'}).status_code, 400)

        mock_update.side_effect = None
        mock_update.return_value = None
        self.assertEqual(self.client.put('/api/invoices/404', json={'amount': 1}).status_code, 404)

    @patch('web_interface.invoice_service_app.sync_invoice')
    def test_manual_resync(self, mock_sync):
        mock_sync.return_value = SyncResult('unchanged', 5, 'UHAWB-5', None)

        response = self.client.post('/api/invoices/5/empost-sync')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['empost_status'], 'unchanged')
        self.assertEqual(mock_sync.call_args.kwargs['invoice_id'], 5)

    @patch('web_interface.invoice_service_app.sync_invoice')
    def test_manual_resync_unknown_invoice(self, mock_sync):
        mock_sync.return_value = SyncResult('skipped', None, None, None)
        response = self.client.post('/api/invoices/404/empost-sync')
        self.assertEqual(response.status_code, 404)


if __name__ == '__main__':
    unittest.main()
