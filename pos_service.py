#!/usr/bin/env python3
# POS checkout service: catalog index + barcode resolver + cart + POS Invoice
import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import requests

from barcodes import format_qty
from cart import Cart
from catalog import CatalogCache
from erp_client import ErpClient, ErpError
from invoice import build_pos_invoice, money, submit_pos_invoice
from pos_config import PosConfig
from resolver import CancelToken, CatalogResolver, FOUND, ScanResult

logger = logging.getLogger(__name__)


class PosService:
    """Everything a till needs between the ERPNext API and its screen."""

    def __init__(self, config: PosConfig, client: Optional[ErpClient] = None,
                 catalog: Optional[CatalogCache] = None):
        self.config = config
        if client is None and config.erpnext_url:
            client = ErpClient.from_config(config)
        self.client = client
        self.catalog = catalog if catalog is not None else CatalogCache()
        self.resolver = CatalogResolver.from_config(config, client=client, catalog=self.catalog)

    @property
    def base_url(self) -> Optional[str]:
        return self.config.erpnext_url

    # ---------- catalog ----------
    def refresh_catalog(self) -> int:
        """Pull the item listing and swap in a fresh barcode index. Returns the item count."""
        if self.client is None:
            raise ErpError("ERPNEXT_URL not configured")
        rows = self.client.get_items(limit=self.config.item_pull_limit)
        index = self.catalog.rebuild(rows)
        logger.info("Loaded %d items, found %d barcode entries locally", len(index), index.barcode_count)
        return len(index)

    def items(self) -> List[Dict[str, Any]]:
        index = self.catalog.index
        out = []
        for item in index.items:
            row = item.to_dict(self.base_url)
            row['rate'] = index.price_for(item)
            out.append(row)
        return out

    # ---------- scanning ----------
    def new_cart(self) -> Cart:
        return Cart()

    def lookup(self, code: str, cancel: Optional[CancelToken] = None) -> ScanResult:
        return self.resolver.resolve_and_quantify(code, cancel)

    def scan(self, cart: Cart, code: str, cancel: Optional[CancelToken] = None) -> ScanResult:
        """Resolve a scanned code and merge it into ``cart``.

        A cancelled scan, or any outcome other than a match, leaves the cart alone.
        """
        result = self.resolver.resolve_and_quantify(code, cancel)
        if result.status != FOUND:
            return result
        if cancel is not None and cancel.cancelled:
            logger.debug("Dropping resolved scan %s; caller went away", code)
            return result
        cart.add(result.item, rate=result.unit_price, qty=result.quantity)
        logger.info("%s added - qty %s - %s", result.item.display_name,
                    format_qty(result.quantity), money(result.unit_price or 0.0))
        return result

    # ---------- checkout ----------
    def checkout(self, cart: Cart, **overrides) -> Dict[str, Any]:
        """Build and submit the POS Invoice for ``cart``; the cart is cleared on success."""
        if self.client is None:
            raise ErpError("ERPNEXT_URL not configured")
        cfg = self.config
        payload = build_pos_invoice(
            cart,
            company=overrides.get('company') or cfg.company,
            customer=overrides.get('customer') or cfg.customer,
            pos_profile=overrides.get('pos_profile') or cfg.pos_profile,
            price_list=overrides.get('price_list') or cfg.price_list,
            currency=overrides.get('currency') or cfg.currency,
            payment_mode=overrides.get('payment_mode') or cfg.payment_mode,
            posting_date=overrides.get('posting_date'),
            warehouse=overrides.get('warehouse') or cfg.warehouse,
        )
        result = submit_pos_invoice(self.client, payload)
        if result.get('ok'):
            cart.clear()
        return result


def main():
    ap = argparse.ArgumentParser(description="ERPNext POS barcode lookup")
    sub = ap.add_subparsers(dest="cmd", required=True)
    sub.add_parser("refresh", help="pull the item listing and report index size")
    p_lookup = sub.add_parser("lookup", help="resolve one or more scanned codes")
    p_lookup.add_argument("codes", nargs="+")
    p_lookup.add_argument("--no-catalog", action="store_true", help="skip the bulk item pull")
    args = ap.parse_args()

    config = PosConfig.from_env()
    logging.basicConfig(level=config.log_level_value(), format="%(asctime)s %(levelname)s %(message)s")
    service = PosService(config)
    if service.client is None:
        print("ERPNEXT_URL is not set", file=sys.stderr)
        return 2

    try:
        if args.cmd == "refresh" or not args.no_catalog:
            count = service.refresh_catalog()
            print(f"Indexed {count} items")
    except (ErpError, requests.RequestException) as exc:
        print(f"Item pull failed: {exc}", file=sys.stderr)
        if args.cmd == "refresh":
            return 1

    if args.cmd == "lookup":
        for code in args.codes:
            result = service.lookup(code)
            print(json.dumps(result.to_dict(service.base_url), ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
