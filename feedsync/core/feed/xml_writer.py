"""
XML fragments for the Pinterest product feed (RSS 2.0 with the g: namespace).

The feed is written in pieces across many slices, so instead of building one
tree this module renders the header, each <item> and the footer separately.
"""

import re
import xml.etree.ElementTree as ET
from xml.sax.saxutils import escape

from .models import FeedItem


# Google Shopping namespace
G_NS = 'http://base.google.com/ns/1.0'

ET.register_namespace('g', G_NS)

# Control characters XML 1.0 does not allow, even escaped
INVALID_XML_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def clean_xml_text(value) -> str:
    """Text safe to place in an element: str() of value without invalid characters."""
    if value is None:
        return ""
    return INVALID_XML_CHARS.sub("", str(value))


def get_xml_header(store_name: str, store_url: str) -> str:
    """
    Opening markup: XML declaration, <rss> and <channel> with its metadata.
    """
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<rss version="2.0" xmlns:g="{G_NS}">\n'
        '<channel>\n'
        f'<title>{escape(clean_xml_text(store_name) or "Product Feed")}</title>\n'
        f'<link>{escape(clean_xml_text(store_url))}</link>\n'
        f'<description>{escape(clean_xml_text("Product Feed for " + (store_name or store_url or "store")))}</description>\n'
    )


def get_xml_footer() -> str:
    """Closing markup for <channel> and <rss>."""
    return '</channel>\n</rss>\n'


def get_xml_item(item: FeedItem, currency: str = "USD") -> str:
    """
    Render one <item> element.

    Args:
        item: Normalized feed item
        currency: ISO currency appended to prices

    Returns:
        XML fragment terminated by a newline
    """
    feed_item = ET.Element('item')

    ET.SubElement(feed_item, f'{{{G_NS}}}id').text = clean_xml_text(item.id)

    # Only include item_group_id if it exists (for variations)
    if item.item_group_id:
        ET.SubElement(feed_item, f'{{{G_NS}}}item_group_id').text = clean_xml_text(item.item_group_id)

    ET.SubElement(feed_item, 'title').text = clean_xml_text(item.title)
    ET.SubElement(feed_item, 'description').text = clean_xml_text(item.description)
    ET.SubElement(feed_item, 'link').text = clean_xml_text(item.link)
    ET.SubElement(feed_item, f'{{{G_NS}}}image_link').text = clean_xml_text(item.image_link)

    for add_src in item.additional_images[:10]:
        if add_src:
            ET.SubElement(feed_item, f'{{{G_NS}}}additional_image_link').text = clean_xml_text(add_src)

    ET.SubElement(feed_item, f'{{{G_NS}}}price').text = f"{item.price:.2f} {currency}"

    # Only include sale price when actually on sale
    if item.sale_price and 0 < item.sale_price < item.price:
        ET.SubElement(feed_item, f'{{{G_NS}}}sale_price').text = f"{item.sale_price:.2f} {currency}"

    ET.SubElement(feed_item, f'{{{G_NS}}}availability').text = clean_xml_text(item.availability)

    if item.product_type:
        ET.SubElement(feed_item, f'{{{G_NS}}}product_type').text = clean_xml_text(item.product_type)

    xml_string = ET.tostring(feed_item, encoding='unicode', method='xml')

    # The namespace is declared once on <rss>
    xml_string = re.sub(r'\s*xmlns:g="[^"]*"', '', xml_string, count=1)

    return xml_string + '\n'
