import unittest

from erp_client import ErpError
from fake_erp import FakeErpClient
from pos_config import PosConfig
from pos_service import PosService
from resolver import CANCELLED, FOUND, NOT_FOUND, CancelToken

LISTING = [
    {'name': 'ITEM-1', 'item_name': 'Widget', 'image': '/files/w.png', 'valuation_rate': 8,
     'standard_rate': 9, 'barcodes': [{'barcode': '4006381333931'}]},
    {'name': 'ITEM-2', 'item_name': 'Gadget', 'valuation_rate': 3},
]


def make_config(**overrides):
    values = dict(
        erpnext_url='https://erp.example.com/',
        api_key='key',
        api_secret='secret',
        company='Acme Retail',
        pos_profile='Main Till',
        price_list='Standard Selling',
        currency='USD',
    )
    values.update(overrides)
    return PosConfig(**values)


class CatalogRefreshTest(unittest.TestCase):
    def test_refresh_indexes_listing(self):
        client = FakeErpClient(listing=LISTING)
        service = PosService(make_config(item_pull_limit=50), client=client)
        self.assertEqual(service.refresh_catalog(), 2)
        self.assertEqual(client.calls, [('get_items', 50)])
        self.assertEqual(service.catalog.index.lookup('4006381333931').item_id, 'ITEM-1')

    def test_items_report_selling_price_and_absolute_image(self):
        service = PosService(make_config(), client=FakeErpClient(listing=LISTING))
        service.refresh_catalog()
        rows = {row['item_code']: row for row in service.items()}
        self.assertEqual(rows['ITEM-1']['rate'], 9.0)
        self.assertEqual(rows['ITEM-1']['image'], 'https://erp.example.com/files/w.png')
        self.assertEqual(rows['ITEM-2']['rate'], 3.0)

    def test_refresh_without_server(self):
        service = PosService(PosConfig())
        self.assertIsNone(service.client)
        with self.assertRaises(ErpError):
            service.refresh_catalog()


class ScanTest(unittest.TestCase):
    def setUp(self):
        self.client = FakeErpClient(
            listing=LISTING,
            items={'2901234025001': {'name': 'CHEESE', 'item_name': 'Cheese', 'rate': 18}},
        )
        self.service = PosService(make_config(), client=self.client)
        self.service.refresh_catalog()
        self.cart = self.service.new_cart()

    def test_scan_adds_local_item_at_selling_price(self):
        result = self.service.scan(self.cart, '4006381333931')
        self.assertEqual(result.status, FOUND)
        line = self.cart.line_for('ITEM-1')
        self.assertEqual((line.qty, line.rate), (1.0, 9.0))

    def test_repeat_scans_merge(self):
        self.service.scan(self.cart, '4006381333931')
        self.service.scan(self.cart, '4006381333931')
        self.assertEqual(self.cart.count, 1)
        self.assertEqual(self.cart.line_for('ITEM-1').qty, 2.0)

    def test_catalog_refresh_does_not_reprice_existing_lines(self):
        self.service.scan(self.cart, '4006381333931')
        self.client.listing = [dict(LISTING[0], standard_rate=11), LISTING[1]]
        self.service.refresh_catalog()
        self.assertEqual(self.service.lookup('4006381333931').unit_price, 11.0)
        self.service.scan(self.cart, '4006381333931')
        line = self.cart.line_for('ITEM-1')
        self.assertEqual(line.rate, 9.0)
        self.assertEqual(line.qty, 2.0)

    def test_scan_uses_embedded_quantity(self):
        self.service.scan(self.cart, '2901234025001')
        line = self.cart.line_for('CHEESE')
        self.assertEqual((line.qty, line.rate), (2.5, 18.0))
        self.assertEqual(self.cart.total, 45.0)

    def test_unknown_code_leaves_cart_alone(self):
        result = self.service.scan(self.cart, '555')
        self.assertEqual(result.status, NOT_FOUND)
        self.assertEqual(self.cart.count, 0)

    def test_cancelled_scan_leaves_cart_alone(self):
        token = CancelToken()
        self.client.on_call = lambda method, args: token.cancel()
        result = self.service.scan(self.cart, '2901234025001', token)
        self.assertEqual(result.status, CANCELLED)
        self.assertEqual(self.cart.count, 0)

    def test_lookup_does_not_touch_a_cart(self):
        result = self.service.lookup('4006381333931')
        self.assertEqual(result.quantity, 1.0)
        self.assertEqual(result.item.item_id, 'ITEM-1')


class CheckoutTest(unittest.TestCase):
    def setUp(self):
        self.client = FakeErpClient(listing=LISTING)
        self.service = PosService(make_config(warehouse='Stores - AR'), client=self.client)
        self.service.refresh_catalog()
        self.cart = self.service.new_cart()
        self.service.scan(self.cart, '4006381333931')

    def test_successful_checkout_clears_cart(self):
        result = self.service.checkout(self.cart)
        self.assertTrue(result['ok'])
        self.assertEqual(self.cart.count, 0)
        payload = self.client.created[0]
        self.assertEqual(payload['customer'], 'Walk-in Customer')
        self.assertEqual(payload['items'][0]['warehouse'], 'Stores - AR')
        self.assertEqual(payload['paid_amount'], 9.0)

    def test_overrides(self):
        self.service.checkout(self.cart, customer='Jane Doe', payment_mode='Card')
        payload = self.client.created[0]
        self.assertEqual(payload['customer'], 'Jane Doe')
        self.assertEqual(payload['payments'][0]['mode_of_payment'], 'Card')

    def test_failed_checkout_keeps_cart(self):
        self.client.failures['create_doc'] = ErpError('down')
        result = self.service.checkout(self.cart)
        self.assertFalse(result['ok'])
        self.assertEqual(self.cart.count, 1)


if __name__ == '__main__':
    unittest.main()
