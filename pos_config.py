"""Till configuration loaded from the environment (and an optional .env file).

Everything the scan/cart core needs is collected into a PosConfig instance
that is handed to the client, resolver and server explicitly.
"""
import logging
import os
from typing import List, Optional, Sequence

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_BARCODE_METHOD = 'pos_custom.api.barcode.get_item_by_barcode'
RESOLVE_STRATEGIES = ('barcode_method', 'item_barcode', 'item_doc', 'item_search')
ITEM_SEARCH_FIELDS = ('default_code', 'ean', 'upc', 'name')


def _env_string(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return trimmed string-valued env vars, normalizing empty strings to None."""
    raw = os.getenv(name, default)
    if raw is None:
        return default
    if isinstance(raw, str):
        clean = raw.strip()
        return clean if clean else default
    return raw


def _env_float(name: str, default: float) -> float:
    raw = _env_string(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = _env_string(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; using %s", name, raw, default)
        return default


def _env_list(name: str, default: Sequence[str]) -> List[str]:
    raw = _env_string(name)
    if raw is None:
        return list(default)
    values = [part.strip() for part in raw.split(',') if part.strip()]
    return values or list(default)


def parse_strategies(names: Sequence[str]) -> List[str]:
    """Keep known strategy names in the given order, dropping unknown ones and repeats."""
    out: List[str] = []
    for name in names:
        key = (name or '').strip().lower()
        if key not in RESOLVE_STRATEGIES:
            logger.warning("Ignoring unknown resolve strategy %r", name)
            continue
        if key not in out:
            out.append(key)
    return out


class PosConfig:
    """Connection and checkout defaults for one till."""

    def __init__(
        self,
        erpnext_url: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        timeout: float = 15.0,
        company: Optional[str] = None,
        pos_profile: Optional[str] = None,
        price_list: Optional[str] = None,
        currency: Optional[str] = None,
        warehouse: Optional[str] = None,
        customer: str = 'Walk-in Customer',
        payment_mode: str = 'Cash',
        barcode_method: str = DEFAULT_BARCODE_METHOD,
        strategies: Optional[Sequence[str]] = None,
        search_fields: Optional[Sequence[str]] = None,
        item_pull_limit: int = 200,
        log_level: str = 'INFO',
    ):
        self.erpnext_url = erpnext_url.rstrip('/') if erpnext_url else None
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout
        self.company = company
        self.pos_profile = pos_profile
        self.price_list = price_list
        self.currency = currency
        self.warehouse = warehouse
        self.customer = customer
        self.payment_mode = payment_mode
        self.barcode_method = barcode_method
        self.strategies = parse_strategies(strategies) if strategies is not None else list(RESOLVE_STRATEGIES)
        self.search_fields = list(search_fields) if search_fields is not None else list(ITEM_SEARCH_FIELDS)
        self.item_pull_limit = item_pull_limit
        self.log_level = (log_level or 'INFO').strip().upper()

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> 'PosConfig':
        if load_env_file:
            load_dotenv()
        return cls(
            erpnext_url=_env_string('ERPNEXT_URL'),
            api_key=_env_string('ERPNEXT_API_KEY'),
            api_secret=_env_string('ERPNEXT_API_SECRET'),
            timeout=_env_float('POS_HTTP_TIMEOUT', 15.0),
            company=_env_string('POS_COMPANY'),
            pos_profile=_env_string('POS_PROFILE'),
            price_list=_env_string('POS_PRICE_LIST'),
            currency=_env_string('POS_CURRENCY'),
            warehouse=_env_string('POS_WAREHOUSE'),
            customer=_env_string('POS_CUSTOMER', 'Walk-in Customer'),
            payment_mode=_env_string('POS_PAYMENT_MODE', 'Cash'),
            barcode_method=_env_string('POS_BARCODE_METHOD', DEFAULT_BARCODE_METHOD),
            strategies=_env_list('POS_RESOLVE_STRATEGIES', RESOLVE_STRATEGIES),
            search_fields=_env_list('POS_ITEM_SEARCH_FIELDS', ITEM_SEARCH_FIELDS),
            item_pull_limit=_env_int('POS_ITEM_PULL_LIMIT', 200),
            log_level=_env_string('POS_LOG_LEVEL', 'INFO'),
        )

    @property
    def has_erp_credentials(self) -> bool:
        return bool(self.erpnext_url and self.api_key and self.api_secret)

    def log_level_value(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)
