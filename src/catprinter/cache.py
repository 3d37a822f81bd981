"""
Last-used printer cache.

After a successful connection the CLI records the printer address under
``~/.config/catprinter/`` so later commands can connect without a BLE scan.
Entries older than the TTL are ignored.
"""

import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60

CONFIG_DIR = Path.home() / ".config" / "catprinter"
CACHE_FILE = CONFIG_DIR / "last_printer.json"


@dataclass
class CachedPrinter:
    """A remembered printer."""

    address: str
    name: str
    last_used: float  # Unix timestamp

    def age(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.last_used

    @classmethod
    def from_json(cls, text: str) -> "CachedPrinter":
        data = json.loads(text)
        return cls(
            address=str(data["address"]),
            name=str(data["name"]),
            last_used=float(data["last_used"]),
        )


def load_cached_printer(ttl_seconds: int = DEFAULT_TTL_SECONDS) -> Optional[CachedPrinter]:
    """Return the cached printer, or None if missing, unreadable or stale."""
    if not CACHE_FILE.exists():
        return None

    try:
        cached = CachedPrinter.from_json(CACHE_FILE.read_text())
    except (ValueError, KeyError, TypeError) as e:
        logger.debug("Ignoring invalid printer cache %s: %s", CACHE_FILE, e)
        return None

    if cached.age() > ttl_seconds:
        logger.debug("Cached printer %s expired", cached.address)
        return None
    return cached


def save_printer(address: str, name: str = "MXW01") -> CachedPrinter:
    """Record ``address`` as the last-used printer."""
    cached = CachedPrinter(address=address, name=name, last_used=time.time())
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    CACHE_FILE.write_text(json.dumps(asdict(cached), indent=2))
    logger.debug("Cached printer %s", address)
    return cached


def clear_cache() -> bool:
    """Forget the cached printer. Returns False if nothing was cached."""
    try:
        CACHE_FILE.unlink()
    except FileNotFoundError:
        return False
    return True
