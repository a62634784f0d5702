#!/usr/bin/env python3
"""
Build the Shopify listing payload for a ledger row.

Row values always win; generated content only fills blanks.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from constants import (
    COL_CATEGORY,
    COL_DESCRIPTION,
    COL_HANDLE,
    COL_META_DESCRIPTION,
    COL_PRICE,
    COL_PRODUCT_KEY,
    COL_SIZES,
    COL_SKU,
    COL_STYLE,
    COL_TAGS,
    COL_TITLE,
    COL_VENDOR,
    DEFAULT_SIZE,
    METAFIELD_COLUMN_MAP,
    METAFIELD_NAMESPACE,
    SIZE_OPTIONS,
    SIZE_STOCK_COLUMNS,
)
from content_generator import GeneratedContent
from merchandising import CategoryMapping, category_column_updates, resolve_category, resolve_price

TEXT_METAFIELD_TYPE = "single_line_text_field"
SIZE_OPTION_NAME = "Size"


@dataclass
class VariantSpec:
    title: str
    sku: str
    size: str
    price: Optional[str] = None
    inventory_quantity: Optional[int] = None


@dataclass
class ListingBuild:
    """Everything the saga sends to Shopify for one row."""
    product_input: Dict
    variants: List[VariantSpec]
    variant_metafields: List[List[Dict]]
    metafields: List[Dict]
    sheet_updates: Dict[str, str]
    tags: List[str]
    price: str
    category: CategoryMapping
    title: str
    has_options: bool = False
    warnings: List[str] = field(default_factory=list)


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", str(value).strip().lower()).strip("-")


def build_handle(row_values: Dict[str, str]) -> str:
    explicit = row_values.get(COL_HANDLE)
    if explicit:
        return slugify(explicit)
    candidates = [row_values.get(c) for c in (COL_PRODUCT_KEY, COL_SKU, COL_TITLE)]
    base = next((c for c in candidates if c), "untitled")
    # Suffix keeps handles unique across re-listings of the same key
    return f"{slugify(base)}-{int(time.time() * 1000)}"


def parse_sizes(raw: Optional[str]) -> List[str]:
    """Comma list from the Sizes column, filtered to known sizes."""
    if not raw:
        return [DEFAULT_SIZE]
    parts = [part.strip() for part in raw.split(",") if part.strip()]
    sizes = [part for part in parts if part in SIZE_OPTIONS]
    return sizes or [DEFAULT_SIZE]


def parse_quantity(value) -> Optional[int]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return max(0, int(float(str(value).strip())))
    except ValueError:
        return None


def derive_sizes(row_values: Dict[str, str]) -> str:
    """Sizes with stock > 0, in canonical order; One-size when none."""
    sizes = [size for size in SIZE_OPTIONS if (parse_quantity(row_values.get(SIZE_STOCK_COLUMNS[size])) or 0) > 0]
    return ", ".join(sizes) if sizes else DEFAULT_SIZE


def build_variants(sizes: List[str], base_sku: str, price: Optional[str], row_values: Dict[str, str]) -> List[VariantSpec]:
    base_sku = (base_sku or "SKU").strip()
    return [
        VariantSpec(
            title=size,
            sku=f"{base_sku}-{size}",
            size=size,
            price=price,
            inventory_quantity=parse_quantity(row_values.get(SIZE_STOCK_COLUMNS.get(size, ""))),
        )
        for size in sizes
    ]


def merge_tags(sheet_tags: Optional[str], generated_tags: Optional[List[str]] = None) -> List[str]:
    """Sheet tags first, then generated ones, de-duplicated in order."""
    merged = []
    for tag in (sheet_tags or "").split(",") + list(generated_tags or []):
        tag = tag.strip()
        if tag and tag not in merged:
            merged.append(tag)
    return merged


def metafield(key: str, value: str, value_type: str = TEXT_METAFIELD_TYPE) -> Dict:
    return {"namespace": METAFIELD_NAMESPACE, "key": key, "type": value_type, "value": value}


def metafields_from_row(row_values: Dict[str, str], generated: Optional[GeneratedContent] = None) -> List[Dict]:
    """Listing metafields: row metafield columns first, generated values fill gaps."""
    sources: Dict[str, str] = {}
    for column, key in METAFIELD_COLUMN_MAP.items():
        if row_values.get(column):
            sources[key] = row_values[column]

    if generated is not None:
        for key, value in generated.metafields.items():
            if key not in sources and value:
                sources[key] = value

    return [metafield(key, value) for key, value in sources.items()]


def variant_input(variant: VariantSpec, default_price: str, option_ids: Dict[str, str], location_id: Optional[str]) -> Dict:
    """productVariantsBulkCreate input for one variant."""
    option_value = {"name": variant.size}
    if option_ids.get(SIZE_OPTION_NAME):
        option_value["optionId"] = option_ids[SIZE_OPTION_NAME]
    else:
        option_value["optionName"] = SIZE_OPTION_NAME

    payload = {
        "price": variant.price or default_price,
        "optionValues": [option_value],
        "inventoryItem": {"sku": variant.sku},
    }

    if variant.inventory_quantity is not None and location_id:
        payload["inventoryPolicy"] = "DENY"
        payload["inventoryItem"]["tracked"] = True
        payload["inventoryQuantities"] = [
            {"locationId": location_id, "availableQuantity": variant.inventory_quantity}
        ]

    return payload


def standalone_variant_input(variant: VariantSpec, default_price: str, variant_id: str, location_id: Optional[str]) -> Dict:
    """productVariantsBulkUpdate input for the variant productCreate makes on its own."""
    payload = {
        "id": variant_id,
        "price": variant.price or default_price,
        "inventoryItem": {"sku": variant.sku},
    }
    if variant.inventory_quantity is not None and location_id:
        payload["inventoryPolicy"] = "DENY"
        payload["inventoryItem"]["tracked"] = True
    return payload


def _pick(row_values: Dict[str, str], column: str, generated_value: Optional[str]) -> Optional[str]:
    return row_values.get(column) or generated_value


def build_listing(
    row_values: Dict[str, str],
    generated: Optional[GeneratedContent] = None,
    default_vendor: Optional[str] = None,
) -> ListingBuild:
    """
    Merge row + generated content into the listing payload.

    An unresolved taxonomy id is logged and left off the payload.
    """
    title = _pick(row_values, COL_TITLE, generated.title if generated else None) or "Untitled Product"
    description = _pick(row_values, COL_DESCRIPTION, generated.description if generated else None) or ""
    meta_description = _pick(row_values, COL_META_DESCRIPTION, generated.meta_description if generated else None)
    style = _pick(row_values, COL_STYLE, generated.style if generated else None)
    category_text = _pick(row_values, COL_CATEGORY, generated.category if generated else None)
    vendor = _pick(row_values, COL_VENDOR, generated.vendor if generated else None) or default_vendor

    tags = merge_tags(row_values.get(COL_TAGS), generated.tags if generated else None)
    sizes = parse_sizes(row_values.get(COL_SIZES))
    price = row_values.get(COL_PRICE) or resolve_price(style)
    category = resolve_category(style, category_text)

    base_sku = row_values.get(COL_SKU) or row_values.get(COL_PRODUCT_KEY) or f"SKU-{int(time.time())}"
    variants = build_variants(sizes, base_sku, price, row_values)
    has_options = len(sizes) > 1

    product_input = {
        "title": title,
        "descriptionHtml": description,
        "status": "DRAFT",
        "vendor": vendor,
        "productType": category_text or style,
        "tags": tags,
        "handle": build_handle(row_values),
    }

    warnings = []
    if category.taxonomy_id:
        product_input["category"] = category.taxonomy_id
    else:
        message = f"No taxonomy category for style {style!r}"
        logging.warning(message)
        warnings.append(message)

    sheet_updates = {
        COL_TITLE: title,
        COL_DESCRIPTION: description,
        COL_TAGS: ", ".join(tags),
        COL_PRICE: price,
    }
    if meta_description:
        sheet_updates[COL_META_DESCRIPTION] = meta_description
    sheet_updates.update(category_column_updates(category))

    return ListingBuild(
        product_input=product_input,
        variants=variants,
        variant_metafields=[[metafield("size", variant.size)] for variant in variants],
        metafields=metafields_from_row(row_values, generated),
        sheet_updates=sheet_updates,
        tags=tags,
        price=price,
        category=category,
        title=title,
        has_options=has_options,
        warnings=warnings,
    )
