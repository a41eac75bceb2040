"""Cart for one checkout session: one line per item, insertion ordered."""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Union

from catalog import CatalogItem

logger = logging.getLogger(__name__)

ItemRef = Union[CatalogItem, str]


class CartLineMissing(LookupError):
    """Raised when a quantity change targets an item that is not in the cart."""
    def __init__(self, item_id: str):
        super().__init__(f"No cart line for item {item_id}")
        self.item_id = item_id


def _item_id(item: ItemRef) -> str:
    return item if isinstance(item, str) else item.item_id


class CartLine:
    def __init__(self, item: CatalogItem, qty: float, rate: float):
        self.item = item
        self.qty = qty
        self.rate = rate

    @property
    def line_total(self) -> float:
        return self.rate * self.qty

    def to_dict(self, base_url: Optional[str] = None) -> Dict[str, Any]:
        row = self.item.to_dict(base_url)
        row.update({'qty': self.qty, 'rate': self.rate, 'amount': self.line_total})
        return row

    def __repr__(self):
        return "CartLine(%r, qty=%s, rate=%s)" % (self.item.item_id, self.qty, self.rate)


class Cart:
    """Additive ledger of cart lines.

    The rate of a line is fixed when the line is created; adding the same item
    again only grows the quantity. Observers are called after every change.
    """

    def __init__(self):
        self._lines: Dict[str, CartLine] = {}
        self._lock = threading.RLock()
        self._observers: List[Callable[['Cart'], None]] = []

    # ---------- observers ----------
    def subscribe(self, callback: Callable[['Cart'], None]) -> Callable[[], None]:
        """Register a change callback; returns a function that unregisters it."""
        self._observers.append(callback)

        def unsubscribe():
            if callback in self._observers:
                self._observers.remove(callback)
        return unsubscribe

    def _notify(self):
        for callback in list(self._observers):
            try:
                callback(self)
            except Exception:
                logger.exception("Cart observer %r failed", callback)

    # ---------- queries ----------
    @property
    def lines(self) -> List[CartLine]:
        with self._lock:
            return list(self._lines.values())

    def line_for(self, item: ItemRef) -> Optional[CartLine]:
        with self._lock:
            return self._lines.get(_item_id(item))

    def __contains__(self, item: ItemRef) -> bool:
        return self.line_for(item) is not None

    def __len__(self):
        return self.count

    def __iter__(self):
        return iter(self.lines)

    @property
    def count(self) -> int:
        """Distinct lines, not units."""
        with self._lock:
            return len(self._lines)

    @property
    def total(self) -> float:
        with self._lock:
            return sum(line.line_total for line in self._lines.values())

    # ---------- mutations ----------
    def _require(self, item: ItemRef) -> CartLine:
        key = _item_id(item)
        line = self._lines.get(key)
        if line is None:
            raise CartLineMissing(key)
        return line

    def add(self, item: CatalogItem, rate: Optional[float] = None, qty: float = 1.0) -> CartLine:
        if qty <= 0:
            raise ValueError(f"Quantity to add must be positive, got {qty}")
        with self._lock:
            line = self._lines.get(item.item_id)
            if line is not None:
                line.qty += qty
            else:
                if rate is None:
                    rate = item.unit_price if item.unit_price is not None else 0.0
                line = CartLine(item, qty, rate)
                self._lines[item.item_id] = line
        self._notify()
        return line

    def set_qty(self, item: ItemRef, qty: float) -> Optional[CartLine]:
        """Replace the quantity of an existing line; zero or less removes it."""
        with self._lock:
            line = self._require(item)
            if qty <= 0:
                del self._lines[line.item.item_id]
                line = None
            else:
                line.qty = qty
        self._notify()
        return line

    def increment(self, item: ItemRef) -> CartLine:
        with self._lock:
            line = self._require(item)
            line.qty += 1.0
        self._notify()
        return line

    def decrement(self, item: ItemRef) -> Optional[CartLine]:
        """Take one unit off; a line at 1.0 or less is removed instead."""
        with self._lock:
            line = self._require(item)
            if line.qty > 1.0:
                line.qty -= 1.0
            else:
                del self._lines[line.item.item_id]
                line = None
        self._notify()
        return line

    def remove(self, item: ItemRef) -> bool:
        with self._lock:
            removed = self._lines.pop(_item_id(item), None) is not None
        if removed:
            self._notify()
        return removed

    def clear(self):
        with self._lock:
            self._lines.clear()
        self._notify()

    def to_dict(self, base_url: Optional[str] = None) -> Dict[str, Any]:
        with self._lock:
            return {
                'lines': [line.to_dict(base_url) for line in self._lines.values()],
                'count': len(self._lines),
                'total': sum(line.line_total for line in self._lines.values()),
            }
