"""Marketplace category catalog.

Category codes come from the backend's account-category enum. The catalog is
fixed at import time; routing entries may still name codes outside it.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

CATEGORY_CATALOG: Mapping[str, str] = MappingProxyType(
    {
        "wos_accounts": "Whiteout Survival",
        "kingshot_accounts": "KingShot",
        "pubg_accounts": "PUBG Mobile",
        "fortnite_accounts": "Fortnite",
        "tiktok_accounts": "TikTok",
        "instagram_accounts": "Instagram",
    }
)


def category_display_name(code: Optional[str]) -> str:
    if not code:
        return "N/A"
    return CATEGORY_CATALOG.get(code, code)


def category_env_suffix(code: str) -> str:
    return code.strip().upper().replace("-", "_")


def normalize_category(value: object) -> Optional[str]:
    if not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    return normalized or None


__all__ = [
    "CATEGORY_CATALOG",
    "category_display_name",
    "category_env_suffix",
    "normalize_category",
]
