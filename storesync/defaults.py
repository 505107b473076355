"""Built-in default settings document and derived lookups."""

import copy
from typing import Any

DEFAULT_SETTINGS: dict[str, Any] = {
    "branding": {
        "logo": None,
        "fallbackText": "Wonder",
        "subText": "Fashions",
        "favicon": None,
    },
    "splashScreen": {
        "enabled": True,
        "duration": 3000,
        "backgroundColor": "#771d1d",
        "showTagline": True,
        "tagline": "Posh but Affordable",
    },
    "header": {
        "announcement": "Direct from Manufacturer - No Middle Man | Posh but Affordable",
        "showAnnouncement": True,
        "sticky": True,
    },
    "footer": {
        "aboutText": (
            "Wonder Fashions brings you exquisite traditional wear directly "
            "from manufacturers. We offer posh styles at affordable prices."
        ),
        "copyrightText": "© 2024 Wonder Fashions. All Rights Reserved.",
        "showNewsletter": True,
        "columns": [
            {
                "title": "Shop Women",
                "links": [
                    {"label": "Sarees Collection", "url": "/shop?category=sarees"},
                    {"label": "Lehengas", "url": "/shop?category=lehenga"},
                ],
            },
            {
                "title": "Support",
                "links": [
                    {"label": "Order Tracking", "url": "/order-history"},
                    {"label": "Privacy Policy", "url": "/privacy-policy"},
                ],
            },
        ],
    },
    "countries": {
        "india": {
            "enabled": True,
            "name": "India",
            "flag": "🇮🇳",
            "currency": {"code": "INR", "symbol": "₹"},
            "shipping": {"freeShippingThreshold": 1999, "standardShippingCost": 99},
            "storeInfo": {
                "storeEmail": "india@wonderfashions.com",
                "storePhone": "+91 9876543210",
                "storeAddress": {"street": "Main Rd", "city": "Mumbai"},
            },
        },
        "uk": {
            "enabled": True,
            "name": "United Kingdom",
            "flag": "🇬🇧",
            "currency": {"code": "GBP", "symbol": "£"},
            "shipping": {"freeShippingThreshold": 100, "standardShippingCost": 4.99},
            "storeInfo": {
                "storeEmail": "uk@wonderfashions.com",
                "storePhone": "+44 20 1234 5678",
                "storeAddress": {"street": "High St", "city": "London"},
            },
        },
    },
    "socialMediaList": [
        {"id": "1", "platform": "instagram", "url": "https://instagram.com", "enabled": True},
        {"id": "2", "platform": "facebook", "url": "https://facebook.com", "enabled": True},
    ],
    "categories": [
        {
            "id": "women",
            "name": "Women",
            "slug": "women",
            "enabled": True,
            "order": 1,
            "subcategories": [
                {"id": "sarees", "name": "Sarees", "slug": "sarees"},
                {"id": "lehenga", "name": "Lehenga", "slug": "lehenga"},
                {"id": "kurtis", "name": "Kurtis & Gowns", "slug": "kurtis"},
            ],
        },
        {
            "id": "jewelry",
            "name": "Jewelry",
            "slug": "jewelry",
            "enabled": True,
            "order": 2,
            "subcategories": [
                {"id": "bangles", "name": "Bangles", "slug": "bangles"},
                {"id": "necklaces", "name": "Necklace Sets", "slug": "necklaces"},
            ],
        },
    ],
    "policies": {
        "privacy": "# Privacy Policy\nYour data is safe...",
        "terms": "# Terms & Conditions\n28 days refund guarantee...",
    },
    "products": {"india": [], "uk": []},
    "homeDesign": {
        "india": {"heroSlides": [], "sections": [], "features": []},
        "uk": {"heroSlides": [], "sections": [], "features": []},
    },
}


def default_document() -> dict[str, Any]:
    """A fresh copy of the built-in default document."""
    return copy.deepcopy(DEFAULT_SETTINGS)


def merge_with_defaults(
    document: dict[str, Any], defaults: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Fill keys missing from ``document`` with values from ``defaults``.

    Nested mappings are merged recursively; values present in the document
    (lists included) always win.
    """
    if defaults is None:
        defaults = DEFAULT_SETTINGS

    merged = copy.deepcopy(defaults)
    for key, value in document.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_with_defaults(value, merged[key])
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _country(document: dict[str, Any], country: str) -> dict[str, Any]:
    countries = document.get("countries") or {}
    if country not in countries:
        raise KeyError(f"Unknown country: {country}")
    return countries[country]


def shipping_cost(document: dict[str, Any], country: str, subtotal: float) -> float:
    """Shipping charged for an order subtotal; free above the threshold."""
    shipping = _country(document, country).get("shipping") or {}
    threshold = shipping.get("freeShippingThreshold", 0)
    if subtotal >= threshold:
        return 0
    return shipping.get("standardShippingCost", 0)


def format_price(document: dict[str, Any], country: str, amount: float) -> str:
    symbol = (_country(document, country).get("currency") or {}).get("symbol", "")
    return f"{symbol}{amount:.2f}"


def enabled_social_links(document: dict[str, Any]) -> list[dict[str, Any]]:
    """Social links that are enabled and have a URL."""
    return [
        link
        for link in document.get("socialMediaList") or []
        if link.get("enabled") and link.get("url")
    ]
