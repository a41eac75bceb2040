"""Catalog items built from ERPNext rows, and the in-memory barcode index."""
import logging
import math
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional

from barcodes import barcode_variants

logger = logging.getLogger(__name__)

ID_FIELDS = ('name', 'item_code', 'code')
DISPLAY_FIELDS = ('item_name', 'item', 'description')
PRICE_FIELDS = ('rate', 'standard_rate', 'valuation_rate', 'price')
SELLING_PRICE_FIELDS = ('standard_rate',)
CHILD_BARCODE_KEYS = ('barcode', 'item_barcode', 'barcode_value', 'barcode_id')
TOP_LEVEL_BARCODE_FIELDS = ('default_code', 'ean', 'upc', 'barcode')

# Fields requested from /api/resource/Item for listing and lookups
ITEM_FIELDS = ['name', 'item_name', 'image', 'stock_uom', 'valuation_rate', 'standard_rate']
ITEM_LIST_FIELDS = ITEM_FIELDS + ['barcodes']


def to_float(value: Any) -> Optional[float]:
    """Parse numbers and numeric strings ("1,250.50"); anything else is None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(',', '')
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode('utf-8', errors='ignore')
    text = str(value).strip()
    return text or None


def first_text(row: Mapping[str, Any], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        text = _text(row.get(key))
        if text:
            return text
    return None


def first_price(row: Mapping[str, Any], keys: Iterable[str] = PRICE_FIELDS) -> Optional[float]:
    for key in keys:
        number = to_float(row.get(key))
        if number is not None:
            return number
    return None


def sanitize_row(row: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """Reduce an ERPNext item row to the canonical keys, or None when it names no item."""
    if not isinstance(row, Mapping):
        return None
    name = first_text(row, ID_FIELDS)
    item_name = first_text(row, DISPLAY_FIELDS)
    if not name and not item_name:
        return None
    out: Dict[str, Any] = {'name': name or item_name}
    if item_name:
        out['item_name'] = item_name
    image = _text(row.get('image'))
    if image:
        out['image'] = image
    uom = _text(row.get('stock_uom'))
    if uom:
        out['stock_uom'] = uom
    rate = first_price(row)
    if rate is not None:
        out['rate'] = rate
    return out


class CatalogItem:
    """A sellable item. Two items are equal when their ids match."""

    __slots__ = ('item_id', 'item_name', 'image', 'uom', 'unit_price')

    def __init__(self, item_id: str, item_name: Optional[str] = None, image: Optional[str] = None,
                 uom: Optional[str] = None, unit_price: Optional[float] = None):
        if not item_id:
            raise ValueError("item_id is required")
        object.__setattr__(self, 'item_id', item_id)
        object.__setattr__(self, 'item_name', item_name)
        object.__setattr__(self, 'image', image)
        object.__setattr__(self, 'uom', uom)
        object.__setattr__(self, 'unit_price', unit_price)

    def __setattr__(self, key, value):
        raise AttributeError("CatalogItem is immutable")

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Optional['CatalogItem']:
        clean = sanitize_row(row)
        if clean is None:
            return None
        return cls(
            item_id=clean['name'],
            item_name=clean.get('item_name'),
            image=clean.get('image'),
            uom=clean.get('stock_uom'),
            unit_price=clean.get('rate'),
        )

    @property
    def display_name(self) -> str:
        return self.item_name or self.item_id

    def __eq__(self, other):
        if not isinstance(other, CatalogItem):
            return NotImplemented
        return self.item_id == other.item_id

    def __hash__(self):
        return hash(self.item_id)

    def __repr__(self):
        return "CatalogItem(%r, %r)" % (self.item_id, self.item_name)

    def to_dict(self, base_url: Optional[str] = None) -> Dict[str, Any]:
        return {
            'item_code': self.item_id,
            'item_name': self.display_name,
            'image': absolute_image_url(self.image, base_url),
            'stock_uom': self.uom,
            'rate': self.unit_price,
        }


def absolute_image_url(path: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    if not path:
        return None
    if isinstance(path, bytes):
        path = path.decode('utf-8', errors='ignore')
    text = str(path).strip()
    if not text:
        return None
    lowered = text.lower()
    if lowered.startswith(('http://', 'https://', 'data:')):
        return text
    if text.startswith('//'):
        scheme = 'https:' if base_url and base_url.lower().startswith('https') else 'http:'
        return scheme + text
    normalized = text if text.startswith('/') else '/' + text
    if base_url:
        return base_url.rstrip('/') + normalized
    return normalized


def _row_barcodes(row: Mapping[str, Any]) -> List[str]:
    """Barcode values from child tables (lists of dicts) and known top-level fields."""
    found: List[str] = []
    for value in row.values():
        if not isinstance(value, list):
            continue
        for entry in value:
            if not isinstance(entry, Mapping):
                continue
            for key in CHILD_BARCODE_KEYS:
                text = _text(entry.get(key))
                if text:
                    found.append(text)
    for key in TOP_LEVEL_BARCODE_FIELDS:
        value = row.get(key)
        if isinstance(value, (list, dict)):
            continue
        text = _text(value)
        if text:
            found.append(text)
    return found


class LocalCatalogIndex:
    """Immutable snapshot: barcode variant -> item, item id -> selling price."""

    def __init__(self, items: Optional[List[CatalogItem]] = None,
                 barcodes: Optional[Dict[str, CatalogItem]] = None,
                 prices: Optional[Dict[str, float]] = None):
        self._items = list(items or [])
        self._barcodes = dict(barcodes or {})
        self._prices = dict(prices or {})

    @classmethod
    def build(cls, rows: Iterable[Mapping[str, Any]]) -> 'LocalCatalogIndex':
        items: Dict[str, CatalogItem] = {}
        barcodes: Dict[str, CatalogItem] = {}
        prices: Dict[str, float] = {}
        skipped = 0
        for row in rows or []:
            item = CatalogItem.from_row(row) if isinstance(row, Mapping) else None
            if item is None:
                skipped += 1
                continue
            items[item.item_id] = item
            selling = first_price(row, SELLING_PRICE_FIELDS)
            if selling is not None and selling > 0:
                prices[item.item_id] = selling
            for code in _row_barcodes(row):
                for variant in barcode_variants(code):
                    barcodes[variant] = item
        if skipped:
            logger.warning("Skipped %d catalog rows without item code or name", skipped)
        logger.info("Indexed %d items, %d barcode entries", len(items), len(barcodes))
        return cls(list(items.values()), barcodes, prices)

    @property
    def items(self) -> List[CatalogItem]:
        return list(self._items)

    def __len__(self):
        return len(self._items)

    @property
    def barcode_count(self) -> int:
        return len(self._barcodes)

    def get(self, variant: str) -> Optional[CatalogItem]:
        return self._barcodes.get(variant)

    def lookup(self, code: str) -> Optional[CatalogItem]:
        for variant in barcode_variants(code):
            item = self._barcodes.get(variant)
            if item is not None:
                return item
        return None

    def override_price(self, item_id: str) -> Optional[float]:
        return self._prices.get(item_id)

    def price_for(self, item: CatalogItem) -> float:
        """Selling price override, else the item's own price, else 0.0."""
        override = self._prices.get(item.item_id)
        if override is not None:
            return override
        return item.unit_price if item.unit_price is not None else 0.0


class CatalogCache:
    """Holds the current index; a rebuild swaps in a complete new snapshot."""

    def __init__(self, index: Optional[LocalCatalogIndex] = None):
        self._lock = threading.Lock()
        self._index = index or LocalCatalogIndex()

    @property
    def index(self) -> LocalCatalogIndex:
        with self._lock:
            return self._index

    def rebuild(self, rows: Iterable[Mapping[str, Any]]) -> LocalCatalogIndex:
        fresh = LocalCatalogIndex.build(rows)
        with self._lock:
            self._index = fresh
        return fresh
