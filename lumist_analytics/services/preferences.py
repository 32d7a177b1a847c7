"""
Persisted display-currency preference.

A single key, "revenue-currency", stored in a small JSON file.
"""

import json
from pathlib import Path
from typing import Optional

from lumist_analytics.core.config import settings
from lumist_analytics.core.observability import get_logger
from lumist_analytics.services.currency import DISPLAY_CURRENCIES

logger = get_logger(__name__)

CURRENCY_KEY = "revenue-currency"


class DisplayCurrencyStore:
    """Reads and writes the display currency (USD or VND)."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.display_currency_file)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable preference file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self) -> str:
        """
        Return the saved currency.

        Nothing saved yet reads as the configured default; a saved value other
        than VND reads as USD.
        """
        saved = self._read().get(CURRENCY_KEY)
        if saved is None:
            saved = settings.default_display_currency
        return "VND" if saved == "VND" else "USD"

    def set(self, currency: str) -> str:
        """
        Persist the display currency.

        Raises:
            ValueError: If the currency is not a supported display currency
        """
        if currency not in DISPLAY_CURRENCIES:
            raise ValueError(
                f"Unsupported display currency {currency!r}; expected one of {', '.join(DISPLAY_CURRENCIES)}"
            )
        data = self._read()
        data[CURRENCY_KEY] = currency
        self.path.write_text(json.dumps(data), encoding="utf-8")
        logger.info(f"Display currency set to {currency}")
        return currency
