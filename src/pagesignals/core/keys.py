"""Shared schema keys to avoid magic strings across report and inventory code."""

from __future__ import annotations

# Inventory entry keys
K_URL = "url"
K_CATEGORY = "category"

# Result / report keys
K_ITEMS = "items"
K_ERROR = "error"
K_STATUS = "status"
K_LABEL = "label"
K_COUNT = "count"
K_FREQUENCIES = "frequencies"
K_RANKED = "ranked"
