"""POS Invoice payloads built from a cart, and their create + submit round trip."""
import logging
from datetime import date
from typing import Any, Dict, Optional

import requests

from cart import Cart
from erp_client import ErpError

logger = logging.getLogger(__name__)

POS_INVOICE_DOCTYPE = 'POS Invoice'


class InvoiceError(ValueError):
    """Raised when an invoice cannot be built from the cart and settings given."""


def money(amount: float) -> str:
    return f"{amount:,.2f}"


def build_pos_invoice(cart: Cart, company: Optional[str], customer: Optional[str],
                      pos_profile: Optional[str], price_list: Optional[str],
                      currency: Optional[str], payment_mode: Optional[str],
                      posting_date: Optional[date] = None,
                      warehouse: Optional[str] = None) -> Dict[str, Any]:
    lines = cart.lines
    if not lines:
        raise InvoiceError("Cart is empty")
    header = {
        'company': company,
        'customer': customer,
        'pos_profile': pos_profile,
        'selling_price_list': price_list,
        'currency': currency,
        'mode_of_payment': payment_mode,
    }
    missing = [key for key, value in header.items() if not value]
    if missing:
        raise InvoiceError("Missing required fields: " + ", ".join(missing))

    items = []
    for line in lines:
        row = {
            'item_code': line.item.item_id,
            'qty': line.qty,
            'rate': line.rate,
            'amount': line.line_total,
        }
        if warehouse:
            row['warehouse'] = warehouse
        items.append(row)
    total = sum(row['amount'] for row in items)

    return {
        'customer': customer,
        'company': company,
        'pos_profile': pos_profile,
        'posting_date': (posting_date or date.today()).strftime('%Y-%m-%d'),
        'currency': currency,
        'selling_price_list': price_list,
        'items': items,
        'payments': [{'mode_of_payment': payment_mode, 'amount': total}],
        'paid_amount': total,
        'docstatus': 1,
    }


def _doc_from(body: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(body, dict):
        return None
    for key in ('data', 'message'):
        if isinstance(body.get(key), dict):
            return body[key]
    if body.get('name'):
        return body
    return None


def submit_pos_invoice(client, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Create the POS Invoice, then submit it. Returns {ok, invoice_name, message}."""
    try:
        created = client.create_doc(POS_INVOICE_DOCTYPE, payload)
    except (ErpError, requests.RequestException, ValueError) as exc:
        logger.warning("POS Invoice create failed: %s", exc)
        return {'ok': False, 'invoice_name': None, 'message': f"Error creating invoice: {exc}"}

    doc = _doc_from(created)
    name = str(doc['name']) if doc and doc.get('name') else None
    if name is None:
        return {'ok': True, 'invoice_name': None,
                'message': 'Invoice created but server did not return name/doc.'}
    if doc.get('docstatus') == 1:
        return {'ok': True, 'invoice_name': name, 'message': 'POS Invoice created and submitted'}

    to_submit = dict(doc)
    to_submit.setdefault('doctype', POS_INVOICE_DOCTYPE)
    try:
        client.submit_doc(to_submit)
    except (ErpError, requests.RequestException, ValueError) as exc:
        logger.warning("POS Invoice %s created but submit failed: %s", name, exc)
        return {'ok': True, 'invoice_name': name, 'message': f"Invoice created but submit failed: {exc}"}
    logger.info("POS Invoice %s created and submitted", name)
    return {'ok': True, 'invoice_name': name, 'message': 'POS Invoice created and submitted'}
