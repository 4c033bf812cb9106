"""
Price-impact preview and rate sync for metal/gemstone variants.

preview_price_change is a dry run: it re-prices affected products in memory
with the proposed rate and reports the per-product difference. Nothing is
written.

sync_price_change commits the new rate, re-prices every affected product
with the same substitution and records a PriceHistory entry, all in one
transaction. It re-reads the rate under a row lock so a stale preview can
never be committed as the "old" price.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from jewelbox.exceptions import ValidationError
from jewelbox.models import PriceHistory
from jewelbox.services.catalog_service import ENTITY_TYPES, lookup_variant
from jewelbox.services.product_service import (
    RateOverride, find_products_using_variant, price_product, apply_pricing
)
from jewelbox.utils.number_format import parse_int, parse_rate

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = 'pricing'


def _parse_request(entity_type, entity_id, variant_id, new_price):
    if entity_type not in ENTITY_TYPES:
        raise ValidationError("entity_type must be 'metal' or 'gemstone'")
    return (
        entity_type,
        parse_int(entity_id, 'entity_id', minimum=1),
        parse_int(variant_id, 'variant_id', minimum=1),
        parse_rate(new_price, 'new_price'),
    )


def preview_price_change(session, entity_type: str, entity_id, variant_id, new_price) -> Dict[str, Any]:
    """
    Report how a rate change would move the price of every affected product.

    Returns:
        dict with entity/variant names, old_price, new_price, affected_count
        and products [{id, name, product_code, old_total_price,
        new_total_price, price_difference}]

    Raises:
        ValidationError: bad entity_type or price
        NotFoundError: entity or variant does not exist
    """
    entity_type, entity_id, variant_id, new_price = _parse_request(
        entity_type, entity_id, variant_id, new_price
    )
    ref = lookup_variant(session, entity_type, entity_id, variant_id)
    old_price = ref.rate

    report = {
        'entity_type': entity_type,
        'entity_id': entity_id,
        'variant_id': variant_id,
        'entity_name': ref.entity.name,
        'variant_name': ref.variant.name,
        'unit': ref.unit,
        'old_price': old_price,
        'new_price': new_price,
        'affected_count': 0,
        'products': [],
    }

    if new_price == old_price:
        return report

    override = RateOverride(entity_type, entity_id, variant_id, new_price)
    products: List[Dict[str, Any]] = []
    for product in find_products_using_variant(session, entity_type, entity_id, variant_id):
        old_total = Decimal(product.total_price)
        new_total = price_product(product, override).total_price
        products.append({
            'id': product.id,
            'name': product.name,
            'product_code': product.product_code,
            'old_total_price': old_total,
            'new_total_price': new_total,
            'price_difference': new_total - old_total,
        })

    report['products'] = products
    report['affected_count'] = len(products)
    return report


def sync_price_change(session, entity_type: str, entity_id, variant_id, new_price,
                      changed_by: Optional[int] = None) -> Dict[str, Any]:
    """
    Commit a variant rate change and re-price every product that uses it.

    Returns:
        dict with entity/variant names, old_price, new_price, synced_products
    """
    entity_type, entity_id, variant_id, new_price = _parse_request(
        entity_type, entity_id, variant_id, new_price
    )

    try:
        ref = lookup_variant(session, entity_type, entity_id, variant_id, for_update=True)
        old_price = ref.rate
        now = datetime.now(timezone.utc)

        if entity_type == 'metal':
            ref.variant.price_per_gram = new_price
        else:
            ref.variant.price_per_carat = new_price
        ref.variant.last_updated = now

        override = RateOverride(entity_type, entity_id, variant_id, new_price)
        products = find_products_using_variant(session, entity_type, entity_id, variant_id)
        for product in products:
            apply_pricing(product, price_product(product, override), override, synced_at=now)

        session.add(PriceHistory(
            entity_type=entity_type,
            entity_id=entity_id,
            variant_id=variant_id,
            entity_name=ref.entity.name,
            variant_name=ref.display_name,
            old_price=old_price,
            new_price=new_price,
            unit=ref.unit,
            affected_products=len(products),
            changed_by=changed_by,
        ))
        session.commit()

    except Exception:
        session.rollback()
        raise

    logger.info(
        f"[PRICING] {ref.display_name}: {old_price} -> {new_price}, "
        f"{len(products)} products synced"
    )
    _invalidate_history_cache()

    return {
        'entity_type': entity_type,
        'entity_name': ref.entity.name,
        'variant_name': ref.variant.name,
        'old_price': old_price,
        'new_price': new_price,
        'synced_products': len(products),
    }


def _load_history(session, limit: int) -> List[Dict[str, Any]]:
    rows = session.query(PriceHistory).order_by(
        PriceHistory.created_at.desc(),
        PriceHistory.id.desc()
    ).limit(limit).all()
    return [row.to_dict() for row in rows]


def get_price_history(session, limit: int = 50) -> List[Dict[str, Any]]:
    """Most recent committed rate changes, newest first (cached)."""
    limit = parse_int(limit, 'limit', minimum=1, maximum=500, default=50)
    try:
        from jewelbox.services.cache_service import get_cache
        cache = get_cache()
    except RuntimeError:
        return _load_history(session, limit)
    return cache.get_or_load(CACHE_NAMESPACE, f'history:{limit}', lambda: _load_history(session, limit))


def _invalidate_history_cache() -> None:
    try:
        from jewelbox.services.cache_service import get_cache
        get_cache().invalidate(CACHE_NAMESPACE)
    except RuntimeError:
        pass  # cache not configured
