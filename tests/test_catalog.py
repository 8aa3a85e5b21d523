"""Tests for the WooCommerce client and catalog."""

import xml.etree.ElementTree as ET
from typing import Any, Dict, List

import httpx
import pytest

from feedsync.core.feed.catalog import WooCatalog
from feedsync.core.feed.models import FeedGenerationError
from feedsync.core.feed.xml_writer import G_NS
from feedsync.core.woo_client import WooClient, WooCommerceError

PRODUCTS: Dict[int, Dict[str, Any]] = {
    1: {
        "id": 1, "type": "simple", "name": "Mug", "permalink": "https://shop.test/mug",
        "description": "<p>Big <b>mug</b></p>", "regular_price": "12.50", "sale_price": "9.99",
        "stock_status": "instock", "catalog_visibility": "visible",
        "images": [{"src": "https://shop.test/mug.jpg"}, {"src": "https://shop.test/mug-2.jpg"}],
        "categories": [{"name": "Kitchen"}, {"name": "Mugs"}],
    },
    2: {
        "id": 2, "type": "variable", "name": "Shirt", "permalink": "https://shop.test/shirt",
        "description": "Cotton shirt", "price": "20", "stock_status": "instock",
        "catalog_visibility": "visible", "variations": [21, 22],
        "images": [{"src": "https://shop.test/shirt.jpg"}],
    },
    21: {
        "id": 21, "parent_id": 2, "type": "variation", "name": "Shirt - Red",
        "regular_price": "20", "stock_status": "outofstock",
    },
}


def woo_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/wp-json/wc/v3/products":
        page = int(request.url.params["page"])
        items = [PRODUCTS[1], PRODUCTS[2]] if page == 1 else []
        return httpx.Response(200, json=items, headers={"X-WP-Total": "2", "X-WP-TotalPages": "1"})
    product_id = int(path.rsplit("/", 1)[-1])
    if product_id in PRODUCTS:
        return httpx.Response(200, json=PRODUCTS[product_id])
    if product_id == 403:
        return httpx.Response(403, json={"code": "forbidden"})
    return httpx.Response(404, json={"code": "woocommerce_rest_product_invalid_id"})


@pytest.fixture
def woo_client() -> WooClient:
    return WooClient(
        "https://shop.test",
        "ck_test",
        "cs_test",
        rate_limit_rps=0,
        transport=httpx.MockTransport(woo_handler)
    )


def parse_item(fragment: str) -> ET.Element:
    return ET.fromstring(f'<rss xmlns:g="{G_NS}">{fragment}</rss>').find("item")


class TestWooClient:
    """Tests for WooClient."""

    def test_requires_credentials(self) -> None:
        with pytest.raises(ValueError):
            WooClient("https://shop.test", None, None)

    @pytest.mark.asyncio
    async def test_get_all_products_sends_filters(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[PRODUCTS[1]], headers={"X-WP-TotalPages": "1"})

        client = WooClient("https://shop.test", "ck", "cs", rate_limit_rps=0, transport=httpx.MockTransport(handler))
        products = await client.get_all_products(stock_status="instock")
        await client.close()

        assert [p["id"] for p in products] == [1]
        params = seen[0].url.params
        assert params["status"] == "publish"
        assert params["stock_status"] == "instock"
        assert params["orderby"] == "id"
        assert seen[0].headers["Authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, woo_client) -> None:
        with pytest.raises(WooCommerceError) as exc_info:
            await woo_client.get_product(999)
        await woo_client.close()

        assert exc_info.value.status_code == 404


class TestWooCatalog:
    """Tests for WooCatalog."""

    @pytest.mark.asyncio
    async def test_lists_entries_with_variations(self, woo_client) -> None:
        catalog = WooCatalog(woo_client, store_name="Test Store")

        entries = await catalog.list_eligible_products()

        assert [e.id for e in entries] == [1, 2]
        assert entries[1].type == "variable"
        assert entries[1].children == [21, 22]

    @pytest.mark.asyncio
    async def test_serializes_simple_product(self, woo_client) -> None:
        catalog = WooCatalog(woo_client, currency="EUR")

        item = parse_item(await catalog.serialize_product(1))

        assert item.find(f"{{{G_NS}}}id").text == "1"
        assert item.find("title").text == "Mug"
        assert item.find("description").text == "Big mug"
        assert item.find(f"{{{G_NS}}}price").text == "12.50 EUR"
        assert item.find(f"{{{G_NS}}}sale_price").text == "9.99 EUR"
        assert item.find(f"{{{G_NS}}}image_link").text == "https://shop.test/mug.jpg"
        assert item.find(f"{{{G_NS}}}additional_image_link").text == "https://shop.test/mug-2.jpg"
        assert item.find(f"{{{G_NS}}}product_type").text == "Kitchen > Mugs"
        assert item.find(f"{{{G_NS}}}item_group_id") is None

    @pytest.mark.asyncio
    async def test_variation_inherits_from_parent(self, woo_client) -> None:
        catalog = WooCatalog(woo_client)
        parents = {}
        await catalog.serialize_product(2, parents)

        item = parse_item(await catalog.serialize_product(21, parents))

        assert item.find(f"{{{G_NS}}}item_group_id").text == "2"
        assert item.find("link").text == "https://shop.test/shirt"
        assert item.find(f"{{{G_NS}}}image_link").text == "https://shop.test/shirt.jpg"
        assert item.find(f"{{{G_NS}}}availability").text == "out of stock"

    @pytest.mark.asyncio
    async def test_parent_cache_belongs_to_the_slice(self) -> None:
        paths: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return woo_handler(request)

        client = WooClient("https://shop.test", "ck", "cs", rate_limit_rps=0, transport=httpx.MockTransport(handler))
        catalog = WooCatalog(client)

        parents = {}
        await catalog.serialize_product(2, parents)
        await catalog.serialize_product(21, parents)
        # A later slice starts with an empty cache
        await catalog.serialize_product(21, {})
        await client.close()

        assert list(parents) == [2]
        assert paths.count("/wp-json/wc/v3/products/2") == 2

    @pytest.mark.asyncio
    async def test_deleted_product_serializes_to_nothing(self, woo_client) -> None:
        catalog = WooCatalog(woo_client)

        assert await catalog.serialize_product(404) == ""

    @pytest.mark.asyncio
    async def test_other_errors_fail_the_slice(self, woo_client) -> None:
        catalog = WooCatalog(woo_client)

        with pytest.raises(FeedGenerationError) as exc_info:
            await catalog.serialize_product(403)

        assert exc_info.value.category == FeedGenerationError.CATALOG

    @pytest.mark.asyncio
    async def test_header_and_footer_wrap_items(self, woo_client) -> None:
        catalog = WooCatalog(woo_client, store_name="Test & Co")

        document = catalog.get_header() + await catalog.serialize_product(1) + catalog.get_footer()
        root = ET.fromstring(document.encode("utf-8"))

        assert root.tag == "rss"
        channel = root.find("channel")
        assert channel.find("title").text == "Test & Co"
        assert channel.find("link").text == "https://shop.test"
        assert len(channel.findall("item")) == 1


@pytest.mark.asyncio
async def test_variations_fetched_when_listing_omits_them() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/wp-json/wc/v3/products/3/variations":
            return httpx.Response(200, json=[{"id": 31}, {"id": 32}])
        return httpx.Response(200, json=[{"id": 3, "type": "variable"}], headers={"X-WP-TotalPages": "1"})

    client = WooClient("https://shop.test", "ck", "cs", rate_limit_rps=0, transport=httpx.MockTransport(handler))
    catalog = WooCatalog(client)

    entries = await catalog.list_eligible_products()
    await client.close()

    assert entries[0].children == [31, 32]
