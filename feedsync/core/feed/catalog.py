"""
WooCommerce-backed catalog for feed generation.
"""

import logging
from typing import Any, Dict, List, Optional

from feedsync.core.woo_client import WooClient, WooCommerceError
from .models import CatalogEntry, FeedGenerationError
from .fetcher import product_to_feed_item
from .xml_writer import get_xml_header, get_xml_footer, get_xml_item

logger = logging.getLogger(__name__)


class WooCatalog:
    """Lists and serializes WooCommerce products for the feed."""

    def __init__(
        self,
        client: WooClient,
        store_name: str = "",
        currency: str = "USD",
        hide_out_of_stock: bool = False
    ):
        self.client = client
        self.store_name = store_name
        self.currency = currency
        self.hide_out_of_stock = hide_out_of_stock

    async def list_eligible_products(self) -> List[CatalogEntry]:
        """
        List published products with expansion metadata.

        Returns:
            CatalogEntry per product, variable products carry their variation ids
        """
        stock_status = "instock" if self.hide_out_of_stock else None
        try:
            products = await self.client.get_all_products(status="publish", stock_status=stock_status)
        except WooCommerceError as e:
            raise FeedGenerationError(f"Could not list products: {e}", FeedGenerationError.CATALOG) from e

        entries = []
        for product in products:
            entries.append(CatalogEntry(
                id=int(product["id"]),
                type=product.get("type", "simple"),
                catalog_visibility=product.get("catalog_visibility", "visible"),
                stock_status=product.get("stock_status", "instock"),
                children=await self._variation_ids(product),
            ))

        logger.info(f"Catalog listed {len(entries)} published products")
        return entries

    async def _variation_ids(self, product: Dict[str, Any]) -> List[int]:
        if product.get("type") != "variable":
            return []
        if "variations" in product:
            return [int(v) for v in product.get("variations") or []]

        # Listing trimmed with _fields, ask for the variations
        try:
            variations = await self.client.get_product_variations(int(product["id"]))
        except WooCommerceError as e:
            raise FeedGenerationError(
                f"Could not list variations of product {product['id']}: {e}", FeedGenerationError.CATALOG
            ) from e
        return [int(v["id"]) for v in variations]

    async def _get_parent(self, parent_id: int, parents: Dict[int, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if parent_id in parents:
            return parents[parent_id]
        try:
            return await self.client.get_product(parent_id)
        except WooCommerceError as e:
            logger.warning(f"Could not load parent product {parent_id}: {e}")
            return None

    async def serialize_product(self, product_id: int, parents: Optional[Dict[int, Dict[str, Any]]] = None) -> str:
        """
        XML <item> for one product or variation.

        Variations follow their parent in the dataset, so `parents` only keeps
        the last top-level product. Pass the slice's cache to reuse it.

        Returns:
            Fragment, or '' if the product was deleted since the dataset was built
        """
        try:
            product = await self.client.get_product(product_id)
        except WooCommerceError as e:
            if e.status_code == 404:
                logger.warning(f"Product {product_id} no longer exists, skipping")
                return ""
            raise FeedGenerationError(
                f"Could not load product {product_id}: {e}", FeedGenerationError.CATALOG
            ) from e

        if parents is None:
            parents = {}

        parent = None
        if product.get("parent_id"):
            parent = await self._get_parent(int(product["parent_id"]), parents)
        else:
            parents.clear()
            parents[int(product["id"])] = product

        return get_xml_item(product_to_feed_item(product, parent), currency=self.currency)

    def get_header(self) -> str:
        return get_xml_header(self.store_name, self.client.store_url)

    def get_footer(self) -> str:
        return get_xml_footer()
