"""
Link-feed payload parser.

Two XML layouts are understood:

    <yml_catalog><shop><offers><offer id=".." available="true">...</offer>
    <shop><items><item id=".." available="true">...</item>

Both become raw dicts consumed by ``models.normalize_record``.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional

from ..errors import PermanentParseError

logger = logging.getLogger(__name__)


def _text(element: ET.Element, tag: str) -> Optional[str]:
    child = element.find(tag)
    if child is None or child.text is None:
        return None
    value = child.text.strip()
    return value or None


def _params(element: ET.Element) -> Dict[str, str]:
    params = {}
    for param in element.findall("param"):
        name = (param.get("name") or "").strip()
        if name:
            params[name] = (param.text or "").strip()
    return params


def _offer_to_raw(offer: ET.Element) -> Dict[str, Any]:
    return {
        "article": _text(offer, "vendorCode") or offer.get("id"),
        "title": _text(offer, "name"),
        "description": _text(offer, "description"),
        "price": _text(offer, "price"),
        "currency": _text(offer, "currencyId"),
        "available": offer.get("available"),
        "available_in_stock": _text(offer, "quantity_in_stock"),
        "images": [p.text.strip() for p in offer.findall("picture") if p.text and p.text.strip()],
        "attributes": _params(offer),
        "vendor": _text(offer, "vendor"),
    }


def _item_to_raw(item: ET.Element) -> Dict[str, Any]:
    return {
        "article": _text(item, "barcode"),
        "title": _text(item, "name"),
        "description": _text(item, "description"),
        "price": _text(item, "priceuah") or _text(item, "price"),
        "currency": _text(item, "currencyId"),
        "available": item.get("available"),
        "images": [i.text.strip() for i in item.findall("image") if i.text and i.text.strip()],
        "attributes": _params(item),
        "vendor": _text(item, "vendor"),
    }


def parse_feed(locator: str, payload: bytes) -> List[Dict[str, Any]]:
    """Parse a feed payload into raw record dicts.

    Raises:
        PermanentParseError: payload is not XML or has neither known layout.
    """
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as e:
        raise PermanentParseError(locator, str(e), payload) from e

    shop = root if root.tag == "shop" else root.find("shop")
    if shop is None:
        raise PermanentParseError(locator, f"unexpected root element <{root.tag}>", payload)

    offers = shop.find("offers")
    if offers is not None:
        raw = [_offer_to_raw(o) for o in offers.findall("offer")]
    else:
        items = shop.find("items")
        if items is None:
            raise PermanentParseError(locator, "feed has neither <offers> nor <items>", payload)
        raw = [_item_to_raw(i) for i in items.findall("item")]

    logger.debug(f"Parsed {len(raw)} records from {locator}")
    return raw


__all__ = ["parse_feed"]
