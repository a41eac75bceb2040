"""Thin ERPNext REST client used by the catalog resolver and checkout."""
import json
import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests

from catalog import ITEM_FIELDS, ITEM_LIST_FIELDS

logger = logging.getLogger(__name__)


class ErpError(Exception):
    """Raised when ERPNext cannot be reached or answers with an error."""
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ErpPermissionError(ErpError):
    """Raised on HTTP 403: the API user may not read the requested doctype."""


def _error_message_from_response(resp: requests.Response) -> str:
    try:
        j = resp.json()
        if isinstance(j, dict):
            return str(j.get('message') or j.get('exception') or j.get('exc_type') or resp.text)
        return resp.text
    except ValueError:
        return resp.text


def _snippet(text: Optional[str], limit: int = 400) -> str:
    detail = (text or '').strip()
    if len(detail) > limit:
        detail = detail[:limit] + '…'
    return detail


class ErpClient:
    """Token-authenticated access to /api/resource and /api/method endpoints."""

    def __init__(self, base_url: str, api_key: Optional[str] = None, api_secret: Optional[str] = None,
                 timeout: float = 15, barcode_method: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        if not base_url:
            raise ValueError("ERPNext base URL is required")
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout
        self.barcode_method = barcode_method or 'pos_custom.api.barcode.get_item_by_barcode'
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> 'ErpClient':
        return cls(
            config.erpnext_url,
            api_key=config.api_key,
            api_secret=config.api_secret,
            timeout=config.timeout,
            barcode_method=config.barcode_method,
        )

    def close(self):
        self.session.close()

    def _headers(self) -> Dict[str, str]:
        headers = {
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        }
        if self.api_key and self.api_secret:
            headers['Authorization'] = f'token {self.api_key}:{self.api_secret}'
        return headers

    def _url(self, path: str) -> str:
        # callers quote path segments themselves
        return self.base_url + path

    def _send(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
              payload: Optional[Dict[str, Any]] = None) -> requests.Response:
        req = requests.Request(method, self._url(path), headers=self._headers(), params=params, json=payload)
        prepped = self.session.prepare_request(req)
        # ERPNext behind some proxies answers 417 to "Expect: 100-continue"
        prepped.headers.pop('Expect', None)
        try:
            return self.session.send(prepped, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ErpError(f"{method} {path} failed: {exc}") from exc

    def _check(self, resp: requests.Response, context: str):
        if resp.status_code < 400:
            return
        detail = _snippet(_error_message_from_response(resp))
        message = f"{context} returned HTTP {resp.status_code}"
        if detail:
            message += f": {detail}"
        if resp.status_code == 403:
            raise ErpPermissionError(message, status=403)
        raise ErpError(message, status=resp.status_code)

    def _json(self, resp: requests.Response, context: str) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise ErpError(f"{context} returned invalid JSON: {_snippet(resp.text, 200)}",
                           status=resp.status_code) from exc

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        resp = self._send('GET', path, params=params)
        self._check(resp, path)
        return self._json(resp, path)

    def post_json(self, path: str, payload: Dict[str, Any]) -> Any:
        resp = self._send('POST', path, payload=payload)
        self._check(resp, path)
        return self._json(resp, path)

    # ---------- catalog ----------
    def get_items(self, limit: int = 200, fields: Optional[Sequence[str]] = None,
                  filters: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        """Bulk item listing including the barcodes child table."""
        params = {
            'fields': json.dumps(list(fields or ITEM_LIST_FIELDS)),
            'limit_page_length': limit,
        }
        if filters:
            params['filters'] = json.dumps(filters)
        body = self.get_json('/api/resource/Item', params)
        rows = body.get('data') if isinstance(body, dict) else None
        if not isinstance(rows, list):
            raise ErpError("Item listing returned no data list")
        return [row for row in rows if isinstance(row, dict)]

    def get_item_by_barcode(self, barcode: str) -> Any:
        """Call the custom server method; the raw JSON body is returned unwrapped."""
        return self.get_json(f'/api/method/{self.barcode_method}', {'barcode': barcode})

    def find_barcode_item_code(self, barcode: str) -> Optional[str]:
        """Look the code up in the Item Barcode child table; returns the owning item code."""
        params = {
            'doctype': 'Item Barcode',
            'parent_doctype': 'Item',
            'fields': json.dumps(['parent', 'barcode']),
            'filters': json.dumps([['barcode', '=', barcode]]),
            'limit_page_length': 1,
        }
        body = self.get_json('/api/method/frappe.client.get_list', params)
        rows = body.get('message') if isinstance(body, dict) else None
        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            return None
        row = rows[0]
        code = row.get('item_code') or row.get('parent')
        return str(code).strip() if code else None

    def fetch_item(self, name: str) -> Optional[Dict[str, Any]]:
        """GET /api/resource/Item/<name>; None when missing or not readable."""
        if not name:
            return None
        path = '/api/resource/Item/' + quote(name, safe='')
        resp = self._send('GET', path, params={'fields': json.dumps(ITEM_FIELDS)})
        if resp.status_code in (403, 404):
            logger.debug("Item %s not fetchable (HTTP %s)", name, resp.status_code)
            return None
        self._check(resp, path)
        body = self._json(resp, path)
        if isinstance(body, dict):
            data = body.get('data')
            if isinstance(data, dict):
                return data
            if data is None and 'name' in body:
                return body
        return None

    def search_item(self, field: str, value: str) -> Optional[Dict[str, Any]]:
        params = {
            'fields': json.dumps(ITEM_FIELDS),
            'filters': json.dumps([[field, '=', value]]),
            'limit_page_length': 1,
        }
        body = self.get_json('/api/resource/Item', params)
        rows = body.get('data') if isinstance(body, dict) else None
        if isinstance(rows, list) and rows and isinstance(rows[0], dict):
            return rows[0]
        return None

    # ---------- invoices ----------
    def create_doc(self, doctype: str, payload: Dict[str, Any]) -> Any:
        return self.post_json('/api/resource/' + quote(doctype, safe=''), payload)

    def submit_doc(self, doc: Dict[str, Any]) -> Any:
        return self.post_json('/api/method/frappe.client.submit', {'doc': doc})
