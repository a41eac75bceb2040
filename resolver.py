"""Resolve a scanned code to a catalog item.

The local barcode index is probed first (variant by variant). On a miss the
remote strategies run in their configured order; each strategy is tried for
every variant before the next strategy starts. The first answer carrying an
item row decides the outcome. Answers of an unexpected shape count as misses
and are only reported when nothing else matched.
"""
import logging
import threading
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import requests

from barcodes import barcode_variants, quantity_or_default
from catalog import CatalogCache, CatalogItem
from erp_client import ErpError, ErpPermissionError
from pos_config import ITEM_SEARCH_FIELDS, RESOLVE_STRATEGIES, parse_strategies

logger = logging.getLogger(__name__)

FOUND = 'found'
NOT_FOUND = 'not_found'
UNEXPECTED_SHAPE = 'unexpected_shape'
UNPARSEABLE = 'unparseable'
CANCELLED = 'cancelled'

# unwrap_response() verdicts
ROW = 'row'
EMPTY = 'empty'
UNEXPECTED = 'unexpected'

_TRANSPORT_ERRORS = (ErpError, requests.RequestException, ValueError)


class CancelToken:
    """Set by the caller when it no longer wants the result of a resolve."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ScanResult:
    """Outcome of resolving one scanned code."""

    def __init__(self, status: str, code: str, item: Optional[CatalogItem] = None,
                 unit_price: Optional[float] = None, quantity: Optional[float] = None,
                 source: Optional[str] = None, variant: Optional[str] = None,
                 detail: Optional[str] = None):
        self.status = status
        self.code = code
        self.item = item
        self.unit_price = unit_price
        self.quantity = quantity
        self.source = source
        self.variant = variant
        self.detail = detail

    @property
    def ok(self) -> bool:
        return self.status == FOUND

    def __repr__(self):
        return "ScanResult(%s, %r, item=%r)" % (self.status, self.code, self.item)

    def to_dict(self, base_url: Optional[str] = None) -> Dict[str, Any]:
        return {
            'status': self.status,
            'code': self.code,
            'item': self.item.to_dict(base_url) if self.item else None,
            'rate': self.unit_price,
            'qty': self.quantity,
            'source': self.source,
            'variant': self.variant,
            'detail': self.detail,
        }


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    if isinstance(value, Mapping):
        if not value:
            return True
        # {"message": null, "debug": [...]} style answers carry nothing usable
        wrapped = [k for k in ('message', 'data') if k in value]
        return bool(wrapped) and all(_is_empty(value[k]) for k in wrapped)
    return False


def unwrap_response(payload: Any,
                    fetch_item: Optional[Callable[[str], Optional[Dict[str, Any]]]] = None
                    ) -> Tuple[str, Optional[Dict[str, Any]]]:
    """Pull one item row out of the shapes ERPNext endpoints answer with.

    Tried in order: bare record, {message: record}, {message: item code}
    (fetched through ``fetch_item``), {data: record}, {data: [record, ...]},
    [record, ...]. Returns (ROW, row), (EMPTY, None) or (UNEXPECTED, None).
    """
    if _is_empty(payload):
        return EMPTY, None
    if isinstance(payload, Mapping):
        if 'message' not in payload and 'data' not in payload:
            return ROW, dict(payload)
        message = payload.get('message')
        if isinstance(message, Mapping) and message:
            return ROW, dict(message)
        if isinstance(message, str) and message.strip():
            return _fetch_by_identifier(message.strip(), fetch_item)
        data = payload.get('data')
        if isinstance(data, Mapping) and data:
            return ROW, dict(data)
        if isinstance(data, list) and data and isinstance(data[0], Mapping):
            return ROW, dict(data[0])
        return UNEXPECTED, None
    if isinstance(payload, list):
        if isinstance(payload[0], Mapping):
            return ROW, dict(payload[0])
        return UNEXPECTED, None
    if isinstance(payload, str):
        return _fetch_by_identifier(payload.strip(), fetch_item)
    return UNEXPECTED, None


def _fetch_by_identifier(item_code: str, fetch_item) -> Tuple[str, Optional[Dict[str, Any]]]:
    if fetch_item is None:
        return UNEXPECTED, None
    row = fetch_item(item_code)
    if isinstance(row, Mapping) and row:
        return ROW, dict(row)
    logger.warning("Lookup referenced item %s but it could not be fetched", item_code)
    return UNEXPECTED, None


class CatalogResolver:
    """Cascade of lookups from the local index through the ERPNext endpoints.

    ``client`` needs get_item_by_barcode, find_barcode_item_code, fetch_item
    and search_item (see erp_client.ErpClient). Without a client only the
    local index is consulted.
    """

    def __init__(self, client=None, catalog: Optional[CatalogCache] = None,
                 strategies: Optional[Sequence[str]] = None,
                 search_fields: Optional[Sequence[str]] = None):
        self.client = client
        self.catalog = catalog if catalog is not None else CatalogCache()
        self.strategies = parse_strategies(strategies) if strategies is not None else list(RESOLVE_STRATEGIES)
        self.search_fields = list(search_fields) if search_fields is not None else list(ITEM_SEARCH_FIELDS)

    @classmethod
    def from_config(cls, config, client=None, catalog: Optional[CatalogCache] = None) -> 'CatalogResolver':
        return cls(client=client, catalog=catalog, strategies=config.strategies,
                   search_fields=config.search_fields)

    # ---------- strategies ----------
    def _attempts(self, strategy: str, variant: str) -> Iterator[Tuple[str, Callable[[], Any]]]:
        client = self.client
        if strategy == 'barcode_method':
            yield variant, lambda: client.get_item_by_barcode(variant)
        elif strategy == 'item_barcode':
            yield variant, lambda: self._via_item_barcode(variant)
        elif strategy == 'item_doc':
            yield variant, lambda: client.fetch_item(variant)
        elif strategy == 'item_search':
            for field in self.search_fields:
                yield f'{field}={variant}', (lambda f=field: client.search_item(f, variant))

    def _via_item_barcode(self, variant: str) -> Optional[Dict[str, Any]]:
        item_code = self.client.find_barcode_item_code(variant)
        if not item_code:
            return None
        return self.client.fetch_item(item_code)

    # ---------- resolution ----------
    def _price_for(self, item: CatalogItem) -> Optional[float]:
        override = self.catalog.index.override_price(item.item_id)
        return override if override is not None else item.unit_price

    def _probe_local(self, code: str, variants: List[str]) -> Optional[ScanResult]:
        index = self.catalog.index
        for variant in variants:
            item = index.get(variant)
            if item is not None:
                return ScanResult(FOUND, code, item=item, unit_price=index.price_for(item),
                                  source='local', variant=variant)
        return None

    def _finish(self, code: str, row: Dict[str, Any], strategy: str, label: str) -> ScanResult:
        item = CatalogItem.from_row(row)
        if item is None:
            logger.warning("Lookup %s matched %s but the row names no item: %s", strategy, label, row)
            return ScanResult(UNPARSEABLE, code, source=strategy, variant=label,
                              detail="Found data but could not interpret item")
        logger.info("Resolved %s via %s (%s) -> %s", code, strategy, label, item.item_id)
        return ScanResult(FOUND, code, item=item, unit_price=self._price_for(item),
                          source=strategy, variant=label)

    def resolve(self, code: str, cancel: Optional[CancelToken] = None) -> ScanResult:
        trimmed = (code or '').strip()
        variants = barcode_variants(trimmed)
        if not variants:
            return ScanResult(NOT_FOUND, trimmed, detail="Empty code")
        if cancel is not None and cancel.cancelled:
            return ScanResult(CANCELLED, trimmed)

        local = self._probe_local(trimmed, variants)
        if local is not None:
            return local
        if self.client is None:
            return ScanResult(NOT_FOUND, trimmed, detail="Not in local catalog")

        fetch_item = self.client.fetch_item
        unexpected = None
        for strategy in self.strategies:
            denied = False
            for variant in variants:
                for label, attempt in self._attempts(strategy, variant):
                    if cancel is not None and cancel.cancelled:
                        logger.debug("Resolve of %s cancelled before %s (%s)", trimmed, strategy, label)
                        return ScanResult(CANCELLED, trimmed)
                    try:
                        verdict, row = unwrap_response(attempt(), fetch_item)
                    except ErpPermissionError as exc:
                        logger.warning("Lookup %s not permitted, skipping it: %s", strategy, exc)
                        denied = True
                        break
                    except _TRANSPORT_ERRORS as exc:
                        logger.warning("Lookup %s failed for %s: %s", strategy, label, exc)
                        continue
                    if verdict == EMPTY:
                        continue
                    if cancel is not None and cancel.cancelled:
                        return ScanResult(CANCELLED, trimmed)
                    if verdict == UNEXPECTED:
                        logger.warning("Lookup %s for %s answered with an unexpected shape", strategy, label)
                        if unexpected is None:
                            unexpected = (strategy, label)
                        continue
                    return self._finish(trimmed, row, strategy, label)
                if denied:
                    break

        if unexpected is not None:
            strategy, label = unexpected
            return ScanResult(UNEXPECTED_SHAPE, trimmed, source=strategy, variant=label,
                              detail="Item lookup succeeded but result format was unexpected")
        logger.info("No match for %s after trying %d variants", trimmed, len(variants))
        return ScanResult(NOT_FOUND, trimmed, detail="Item not found")

    def resolve_and_quantify(self, code: str, cancel: Optional[CancelToken] = None) -> ScanResult:
        """Resolve, then attach the embedded quantity (1.0 when the code carries none)."""
        result = self.resolve(code, cancel)
        if result.ok:
            result.quantity = quantity_or_default(result.code)
        return result
