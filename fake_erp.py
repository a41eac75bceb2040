"""In-memory stand-in for erp_client.ErpClient used by the unit tests."""
from erp_client import ErpError, ErpPermissionError


class FakeErpClient:
    """Answers from dicts and records every call as (method, args...).

    ``failures`` maps a method name to an exception raised on every call to it.
    """

    def __init__(self, barcode_method=None, item_barcode=None, items=None, search=None,
                 listing=None, failures=None):
        self.barcode_method = dict(barcode_method or {})
        self.item_barcode = dict(item_barcode or {})
        self.items = dict(items or {})
        self.search = dict(search or {})
        self.listing = list(listing or [])
        self.failures = dict(failures or {})
        self.calls = []
        self.created = []
        self.submitted = []
        self.create_response = None
        self.on_call = None

    def _record(self, method, *args):
        self.calls.append((method,) + args)
        if self.on_call is not None:
            self.on_call(method, args)
        exc = self.failures.get(method)
        if exc is not None:
            raise exc

    def calls_to(self, method):
        return [call for call in self.calls if call[0] == method]

    def get_items(self, limit=200, fields=None, filters=None):
        self._record('get_items', limit)
        return list(self.listing)

    def get_item_by_barcode(self, barcode):
        self._record('get_item_by_barcode', barcode)
        return self.barcode_method.get(barcode)

    def find_barcode_item_code(self, barcode):
        self._record('find_barcode_item_code', barcode)
        return self.item_barcode.get(barcode)

    def fetch_item(self, name):
        self._record('fetch_item', name)
        return self.items.get(name)

    def search_item(self, field, value):
        self._record('search_item', field, value)
        return self.search.get((field, value))

    def create_doc(self, doctype, payload):
        self._record('create_doc', doctype)
        self.created.append(payload)
        if self.create_response is not None:
            return self.create_response
        return {'data': {'name': 'POS-INV-0001', 'doctype': doctype, 'docstatus': 0}}

    def submit_doc(self, doc):
        self._record('submit_doc', doc.get('name'))
        self.submitted.append(doc)
        return {'message': dict(doc, docstatus=1)}


def denied(message='Not permitted'):
    return ErpPermissionError(message, status=403)


def broken(message='connection reset'):
    return ErpError(message)
