# core/catalog.py
"""
Read-side helpers over Product lists: discount windows, sorting and the
home-screen selections (hot deals, trending, fresh picks).
"""
import datetime
from typing import List, Optional, Sequence

import pytz

from .models import Product

TRENDING_WINDOW_DAYS = 7
SECTION_SIZE = 10

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=pytz.UTC)


def parse_ts(value: Optional[str]) -> Optional[datetime.datetime]:
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        ts = datetime.datetime.fromisoformat(text)
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = pytz.UTC.localize(ts)
    return ts


def _created(product: Product) -> datetime.datetime:
    return parse_ts(product.created_at) or _EPOCH


def is_discount_active(product: Product, now: Optional[datetime.datetime] = None) -> bool:
    if not product.is_on_sale or (product.discount_percentage or 0) <= 0:
        return False
    ends = parse_ts(product.sale_ends_at)
    if ends is None:
        return True
    now = now or datetime.datetime.now(tz=pytz.UTC)
    return ends > now


def sort_products(products: Sequence[Product], sort_by: Optional[str]) -> List[Product]:
    if sort_by == "price_asc":
        return sorted(products, key=lambda p: p.price)
    if sort_by == "price_desc":
        return sorted(products, key=lambda p: p.price, reverse=True)
    if sort_by == "name":
        return sorted(products, key=lambda p: p.name.casefold())
    if sort_by == "popular":
        return sorted(products, key=lambda p: p.rating or 0, reverse=True)
    return sorted(products, key=_created, reverse=True)


def hot_deals(products: Sequence[Product], now: Optional[datetime.datetime] = None) -> List[Product]:
    """Active discounts, biggest first; the first products when nothing is on sale."""
    deals = [p for p in products if is_discount_active(p, now)]
    if deals:
        deals.sort(key=lambda p: p.discount_percentage or 0, reverse=True)
        return deals[:SECTION_SIZE]
    return list(products[:SECTION_SIZE])


def trending_products(
    products: Sequence[Product], now: Optional[datetime.datetime] = None
) -> List[Product]:
    now = now or datetime.datetime.now(tz=pytz.UTC)
    cutoff = now - datetime.timedelta(days=TRENDING_WINDOW_DAYS)
    recent = [p for p in products if _created(p) >= cutoff]
    pool = recent or list(products)
    return sorted(pool, key=_created, reverse=True)[:SECTION_SIZE]


def strip_expired_discount(product: Product, now: Optional[datetime.datetime] = None) -> Product:
    if is_discount_active(product, now):
        return product
    if product.is_on_sale or product.discount_percentage:
        return product.model_copy(
            update={"is_on_sale": False, "discount_percentage": 0, "original_price": None}
        )
    return product


def fresh_picks(
    products: Sequence[Product],
    limit: int = SECTION_SIZE,
    now: Optional[datetime.datetime] = None,
) -> List[Product]:
    cleaned = [strip_expired_discount(p, now) for p in products]
    return sorted(cleaned, key=_created, reverse=True)[:limit]
