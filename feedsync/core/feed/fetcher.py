"""
Convert WooCommerce product payloads into feed items.
"""

import re
from typing import Any, Dict, List, Optional

from .models import FeedItem


def strip_html(description: str) -> str:
    """Strip HTML tags, shortcodes and extra whitespace from a description."""
    if not description:
        return ''
    # Remove HTML tags
    description = re.sub(r'<[^>]+>', '', description)
    # Remove shortcodes
    description = re.sub(r'\[.*?\]', '', description)
    description = re.sub(r'\s+', ' ', description).strip()
    return description


def _safe_float(value: Any, default: float = 0.0) -> float:
    """Convert value to float safely."""
    try:
        if value is None:
            return default
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            s = value.strip()
            if not s:
                return default
            s = s.replace(',', '').replace('$', '').strip()
            return float(s)
        return default
    except ValueError:
        return default


def _image_sources(product: Dict[str, Any]) -> List[str]:
    """Image URLs of a product (images list) or a variation (single image)."""
    sources = []
    for img in product.get('images') or []:
        if isinstance(img, dict) and img.get('src'):
            sources.append(img['src'])
    image = product.get('image')
    if isinstance(image, dict) and image.get('src') and image['src'] not in sources:
        sources.insert(0, image['src'])
    return sources


def _availability(product: Dict[str, Any]) -> str:
    stock_status = product.get('stock_status', 'instock')
    if stock_status == 'outofstock':
        return 'out of stock'
    if stock_status == 'onbackorder':
        return 'preorder'
    return 'in stock'


def _product_type(product: Dict[str, Any]) -> str:
    """Category path used as product_type (e.g. 'Clothing > Shirts')."""
    names = [c.get('name', '') for c in product.get('categories') or [] if isinstance(c, dict)]
    return ' > '.join(n for n in names if n)


def product_to_feed_item(product: Dict[str, Any], parent: Optional[Dict[str, Any]] = None) -> FeedItem:
    """
    Build a FeedItem from a product or variation payload.

    Args:
        product: WooCommerce product (or variation) dict
        parent: Parent product dict for variations, used for missing fields

    Returns:
        FeedItem
    """
    parent = parent or {}
    images = _image_sources(product) or _image_sources(parent)

    title = product.get('name') or parent.get('name', '')
    description = strip_html(
        product.get('description') or product.get('short_description') or parent.get('description', '')
    )

    regular_price = _safe_float(product.get('regular_price')) or _safe_float(product.get('price'))
    sale_price = _safe_float(product.get('sale_price'), default=0.0) or None

    parent_id = product.get('parent_id')
    item_group_id = str(parent_id) if parent_id else None

    return FeedItem(
        id=str(product.get('id')),
        item_group_id=item_group_id,
        title=title,
        description=description,
        link=product.get('permalink') or parent.get('permalink', ''),
        image_link=images[0] if images else '',
        additional_images=images[1:],
        price=regular_price,
        sale_price=sale_price,
        availability=_availability(product),
        product_type=_product_type(product) or _product_type(parent),
    )
