from flask import Flask, request, jsonify
from dotenv import load_dotenv
import requests
import threading
import logging
import time
from typing import Optional

from cart import Cart, CartLineMissing
from catalog import to_float
from erp_client import ErpError
from invoice import InvoiceError
from pos_config import PosConfig
from pos_service import PosService
from resolver import CANCELLED, FOUND, NOT_FOUND, UNEXPECTED_SHAPE, UNPARSEABLE

# Load environment variables
load_dotenv()

_SCAN_ERROR_STATUS = {
    NOT_FOUND: 404,
    UNEXPECTED_SHAPE: 422,
    UNPARSEABLE: 422,
    # caller gave up on the scan; nothing was added
    CANCELLED: 409,
}

# Seconds before a failed item pull is retried from the scan path
CATALOG_RETRY_SECONDS = 30.0


class _TillState:
    """One till: its service, its current checkout cart and the catalog bootstrap flag."""

    def __init__(self, service: PosService):
        self.service = service
        self.cart: Cart = service.new_cart()
        self.catalog_loaded = False
        self.retry_at = 0.0
        self.lock = threading.Lock()


def create_app(service: Optional[PosService] = None, config: Optional[PosConfig] = None) -> Flask:
    if service is None:
        service = PosService(config or PosConfig.from_env(load_env_file=False))
    config = service.config

    app = Flask(__name__)
    app.logger.setLevel(config.log_level_value())
    logging.getLogger('werkzeug').setLevel(config.log_level_value())

    till = _TillState(service)
    app.extensions['pos_till'] = till

    def _ensure_catalog():
        """Pull the ERPNext item listing on first use; later calls are no-ops.

        After a failed pull, further attempts wait CATALOG_RETRY_SECONDS so scans
        do not queue behind an unreachable server. /api/items/refresh ignores the wait.
        """
        if till.catalog_loaded or service.client is None:
            return
        if time.monotonic() < till.retry_at:
            return
        with till.lock:
            if till.catalog_loaded or time.monotonic() < till.retry_at:
                return
            try:
                count = service.refresh_catalog()
                app.logger.info("Seeded %d ERPNext items into the barcode index", count)
                till.catalog_loaded = True
            except (ErpError, requests.RequestException) as exc:
                till.retry_at = time.monotonic() + CATALOG_RETRY_SECONDS
                app.logger.warning(
                    "Initial item pull failed: %s (verify ERPNEXT_URL + API key/secret)", exc
                )

    def _cart_payload():
        return till.cart.to_dict(service.base_url)

    def _scan_error(result):
        status = _SCAN_ERROR_STATUS.get(result.status, 502)
        body = {'status': 'error', 'result': result.status, 'message': result.detail or result.status}
        return jsonify(body), status

    @app.after_request
    def add_no_cache_headers(response):
        response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, max-age=0'
        response.headers['Pragma'] = 'no-cache'
        return response

    @app.route('/health')
    def health():
        index = service.catalog.index
        return jsonify({
            'status': 'success',
            'erp_configured': service.client is not None,
            'items': len(index),
            'barcodes': index.barcode_count,
        })

    @app.route('/api/items')
    def get_items():
        _ensure_catalog()
        return jsonify({'status': 'success', 'items': service.items()})

    @app.route('/api/items/refresh', methods=['POST'])
    def refresh_items():
        if service.client is None:
            return jsonify({'status': 'error', 'message': 'ERPNext not configured'}), 503
        try:
            count = service.refresh_catalog()
        except (ErpError, requests.RequestException) as exc:
            app.logger.warning("Item refresh failed: %s", exc)
            return jsonify({'status': 'error', 'message': str(exc)}), 502
        till.catalog_loaded = True
        till.retry_at = 0.0
        return jsonify({'status': 'success', 'count': count})

    @app.route('/api/lookup-barcode')
    def api_lookup_barcode():
        """Resolve a code without touching the cart.
        Response: { status, result: { status, item, rate, qty, source, variant } }
        """
        code = str(request.args.get('code') or '').strip()
        if not code:
            return jsonify({'status': 'error', 'message': 'Missing code'}), 400
        _ensure_catalog()
        result = service.lookup(code)
        if result.status != FOUND:
            return _scan_error(result)
        return jsonify({'status': 'success', 'result': result.to_dict(service.base_url)})

    @app.route('/api/scan', methods=['POST'])
    def api_scan():
        data = request.get_json(silent=True) or {}
        code = str(data.get('code') or '').strip()
        if not code:
            return jsonify({'status': 'error', 'message': 'Missing code'}), 400
        _ensure_catalog()
        result = service.scan(till.cart, code)
        if result.status != FOUND:
            return _scan_error(result)
        return jsonify({
            'status': 'success',
            'result': result.to_dict(service.base_url),
            'cart': _cart_payload(),
        })

    @app.route('/api/cart')
    def get_cart():
        return jsonify({'status': 'success', 'cart': _cart_payload()})

    @app.route('/api/cart/lines/<path:item_id>', methods=['POST'])
    def update_cart_line(item_id):
        data = request.get_json(silent=True) or {}
        action = str(data.get('action') or '').strip().lower()
        try:
            if action == 'increment':
                till.cart.increment(item_id)
            elif action == 'decrement':
                till.cart.decrement(item_id)
            elif action == 'set':
                qty = to_float(data.get('qty'))
                if qty is None:
                    return jsonify({'status': 'error', 'message': 'qty must be a number'}), 400
                till.cart.set_qty(item_id, qty)
            else:
                return jsonify({'status': 'error', 'message': f'Unknown action: {action or "(none)"}'}), 400
        except CartLineMissing as exc:
            return jsonify({'status': 'error', 'message': str(exc)}), 404
        return jsonify({'status': 'success', 'cart': _cart_payload()})

    @app.route('/api/cart/lines/<path:item_id>', methods=['DELETE'])
    def delete_cart_line(item_id):
        till.cart.remove(item_id)
        return jsonify({'status': 'success', 'cart': _cart_payload()})

    @app.route('/api/cart/clear', methods=['POST'])
    def clear_cart():
        till.cart.clear()
        return jsonify({'status': 'success', 'cart': _cart_payload()})

    @app.route('/api/checkout', methods=['POST'])
    def checkout():
        data = request.get_json(silent=True) or {}
        overrides = {
            key: data.get(key)
            for key in ('customer', 'company', 'pos_profile', 'price_list', 'currency', 'payment_mode', 'warehouse')
            if data.get(key)
        }
        try:
            result = service.checkout(till.cart, **overrides)
        except InvoiceError as exc:
            return jsonify({'status': 'error', 'message': str(exc)}), 400
        except ErpError as exc:
            return jsonify({'status': 'error', 'message': str(exc)}), 503
        if not result.get('ok'):
            return jsonify({'status': 'error', 'message': result.get('message')}), 502
        return jsonify({
            'status': 'success',
            'invoice_name': result.get('invoice_name'),
            'message': result.get('message'),
            'cart': _cart_payload(),
        })

    return app


app = create_app()
