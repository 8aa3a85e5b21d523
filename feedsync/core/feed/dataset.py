"""
Build the ordered list of product ids a feed is generated from.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .models import CatalogEntry

logger = logging.getLogger(__name__)


class CatalogSource(Protocol):
    """What the feed engine needs from the catalog."""

    async def list_eligible_products(self) -> List[CatalogEntry]:
        """Published products, already stock-filtered when the store hides out of stock items."""
        ...

    async def serialize_product(self, product_id: int, parents: Optional[Dict[int, Dict[str, Any]]] = None) -> str:
        """
        XML fragment for one product or variation ('' if it no longer exists).

        `parents` is a per-slice cache the catalog may use to look up a
        variation's parent.
        """
        ...

    def get_header(self) -> str:
        ...

    def get_footer(self) -> str:
        ...


def build_product_ids(
    entries: Iterable[CatalogEntry],
    excluded_types: Optional[List[str]] = None,
    hide_out_of_stock: bool = False
) -> List[int]:
    """
    Order the feed dataset.

    Excluded types (grouped by default), hidden products and, when the store
    hides them, out of stock products are dropped. Each variable product is
    followed directly by its own variations.

    Args:
        entries: Catalog listing
        excluded_types: Product types never included directly
        hide_out_of_stock: Drop products whose stock_status is not instock

    Returns:
        Ordered product ids, empty if nothing is eligible
    """
    if excluded_types is None:
        excluded_types = ['grouped']

    product_ids: List[int] = []
    seen = set()

    for entry in entries:
        if entry.type in excluded_types:
            continue
        if entry.catalog_visibility == 'hidden':
            continue
        if hide_out_of_stock and entry.stock_status != 'instock':
            continue
        if entry.id in seen:
            continue

        product_ids.append(entry.id)
        seen.add(entry.id)

        if entry.type == 'variable':
            for child_id in entry.children:
                if child_id in seen:
                    logger.warning(f"Variation {child_id} listed twice, keeping first occurrence")
                    continue
                product_ids.append(child_id)
                seen.add(child_id)

    return product_ids


async def get_product_ids_for_feed(
    catalog: CatalogSource,
    excluded_types: Optional[List[str]] = None,
    hide_out_of_stock: bool = False
) -> List[int]:
    """Fetch the catalog listing and build the dataset from it."""
    entries = await catalog.list_eligible_products()
    return build_product_ids(entries, excluded_types, hide_out_of_stock)
