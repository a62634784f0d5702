#!/usr/bin/env python3
"""
Merchandising lookups: price tier, GPC category mapping, GPC attribute
profile and pattern handles.

Everything here is a pure function over static tables.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from constants import (
    COL_GOOGLE_PRODUCT_CATEGORY,
    COL_GPC_ATTRIBUTES,
    COL_GPC_BRICK,
    COL_GPC_BRICK_NAME,
    COL_GPC_CLASS,
    COL_GPC_CLASS_NAME,
    COL_GPC_CODE,
    COL_GPC_DESCRIPTION,
    COL_GPC_FAMILY,
    COL_GPC_FAMILY_NAME,
    COL_GPC_SEGMENT,
    COL_GPC_SEGMENT_NAME,
    COL_STRUCTURED_DATA,
)

DEFAULT_PRICE = "499"

PRICE_MAP = {
    "cap": "399",
    "short sleeve shirt": "649",
    "t-shirt": "349",
    "long sleeve shirt": "699",
    "longsleeve shirt": "699",
    "bali shirt": "499",
    "kids shirt": "299",
    "sweatshirt": "649",
    "hoodie": "649",
    "jacket": "1199",
}

_TOPS = ("67000000", "Clothing", "67010000", "Clothing", "67010800", "Upper Body Wear/Tops")
_TSHIRT_BRICK = ("10001352", "Shirts/Blouses/Polo Shirts/T-shirts")
_SWEATER_BRICK = ("10001351", "Sweaters/Pullovers")
_JACKET_BRICK = ("10001350", "Jackets/Blazers/Cardigans/Waistcoats")
_TAXONOMY = "gid://shopify/TaxonomyCategory/"

# style -> (segment, segment name, family, family name, class, class name, brick, brick name, taxonomy id)
GPC_MAP = {
    "cap": (
        "67000000", "Clothing", "67010000", "Clothing", "67010100", "Clothing Accessories",
        "10001329", "Headwear", _TAXONOMY + "aa-2-17-1",
    ),
    "t-shirt": _TOPS + _TSHIRT_BRICK + (_TAXONOMY + "aa-1-13-8",),
    "short sleeve shirt": _TOPS + _TSHIRT_BRICK + (_TAXONOMY + "aa-1-13-7",),
    "long sleeve shirt": _TOPS + _TSHIRT_BRICK + (_TAXONOMY + "aa-1-13-7",),
    "bali shirt": _TOPS + _TSHIRT_BRICK + (_TAXONOMY + "aa-1-13-7",),
    "hoodie": _TOPS + _SWEATER_BRICK + (_TAXONOMY + "aa-1-13-13",),
    "sweatshirt": _TOPS + _SWEATER_BRICK + (_TAXONOMY + "aa-1-13-14",),
    "jacket": _TOPS + _JACKET_BRICK + (_TAXONOMY + "aa-1-10-2",),
    "kids shirt": _TOPS + _TSHIRT_BRICK + (_TAXONOMY + "aa-1-2-9-6",),
}

ACCESSORY_KEYWORDS = ("tilbehør", "accessories")


@dataclass(frozen=True)
class CategoryMapping:
    code: str
    description: str
    segment_id: str
    segment_name: str
    family_id: str
    family_name: str
    class_id: str
    class_name: str
    brick_id: str
    brick_name: str
    taxonomy_id: Optional[str] = None


def _longest_match(style: Optional[str], table_keys) -> Optional[str]:
    """
    Table key matching style.

    The longest key contained in the style wins (so "Classic Cap" hits
    "cap" and "Kids Shirt Blue" hits "kids shirt" rather than a shorter
    key). Failing that, the shortest key that contains the whole style.
    """
    normalized = (style or "").strip().lower()
    if not normalized:
        return None

    contained = [key for key in table_keys if key in normalized]
    if contained:
        return max(contained, key=len)

    containing = [key for key in table_keys if normalized in key]
    if containing:
        return min(containing, key=len)
    return None


def resolve_price(style: Optional[str]) -> str:
    key = _longest_match(style, PRICE_MAP)
    return PRICE_MAP[key] if key else DEFAULT_PRICE


def _mapping_from(entry: Tuple[str, ...]) -> CategoryMapping:
    (segment, segment_name, family, family_name, klass, class_name,
     brick, brick_name, taxonomy_id) = entry
    return CategoryMapping(
        code=f"{segment}-{family}-{klass}-{brick}",
        description=" > ".join([segment_name, family_name, class_name, brick_name]),
        segment_id=segment,
        segment_name=segment_name,
        family_id=family,
        family_name=family_name,
        class_id=klass,
        class_name=class_name,
        brick_id=brick,
        brick_name=brick_name,
        taxonomy_id=taxonomy_id,
    )


def resolve_category(style: Optional[str], category: Optional[str] = None) -> CategoryMapping:
    """
    GPC mapping for a style, falling back to the category column.

    Accessory categories fall back to the cap mapping, everything else to t-shirt.
    """
    key = _longest_match(style, GPC_MAP)
    if key is None:
        normalized_category = (category or "").lower()
        if any(word in normalized_category for word in ACCESSORY_KEYWORDS):
            key = "cap"
        else:
            key = "t-shirt"
    return _mapping_from(GPC_MAP[key])


def category_column_updates(mapping: CategoryMapping) -> Dict[str, str]:
    return {
        COL_GPC_CODE: mapping.code,
        COL_GPC_DESCRIPTION: mapping.description,
        COL_GPC_SEGMENT: mapping.segment_id,
        COL_GPC_SEGMENT_NAME: mapping.segment_name,
        COL_GPC_FAMILY: mapping.family_id,
        COL_GPC_FAMILY_NAME: mapping.family_name,
        COL_GPC_CLASS: mapping.class_id,
        COL_GPC_CLASS_NAME: mapping.class_name,
        COL_GPC_BRICK: mapping.brick_id,
        COL_GPC_BRICK_NAME: mapping.brick_name,
    }


# ---------------------------------------------------------------------------
# GPC attribute profile
# ---------------------------------------------------------------------------

BASE_PROFILES = {
    "cap": ("67000000-67010000-67010100-10001329", "Apparel & Accessories > Clothing Accessories > Hats"),
    "shirt": ("67000000-67010000-67010800-10001352", "Apparel & Accessories > Clothing > Shirts & Tops"),
    "sweater": ("67000000-67010000-67010800-10001351", "Apparel & Accessories > Clothing > Shirts & Tops"),
    "jacket": ("67000000-67010000-67010800-10001350", "Apparel & Accessories > Clothing > Outerwear"),
}

# Attribute ids
ATTR_AGE = "20000045"
ATTR_GENDER = "20001131"
ATTR_CAP_TYPE = "20001947"
ATTR_SLEEVE = "20001941"
ATTR_MATERIAL = "20000794"
ATTR_SHIRT_TYPE = "20001940"
ATTR_SWEATER_TYPE = "20001942"
ATTR_JACKET_TYPE = "20001938"
ATTR_HOODED = "20003164"

GENDER_MAP = [
    (("unisex",), "30004340"),
    (("female", "kvinde", "dame"), "30003891"),
    (("male", "mand", "herre"), "30004039"),
]
DEFAULT_GENDER_CODE = "30004340"

AGE_MAP = [
    (("adult", "voksen", "voksne"), "30000147"),
    (("all ages", "alle"), "30000164"),
    (("baby", "infant"), "30006665"),
    (("child", "børn", "barn"), "30000628"),
]
DEFAULT_AGE_CODE = "30000147"

SLEEVE_MAP = [
    (("lang", "long", "lange", "fuld", "full"), "30010303"),
    (("kort", "short"), "30010304"),
    (("ingen", "none", "ærmeløs", "no sleeve", "sleeveless"), "30010302"),
    (("tre kvart", "3/4", "three quarter"), "30010305"),
]
OTHER_SLEEVE_CODE = "30002515"

JACKET_TYPES = [
    (("bomber",), "30017159"),
    (("parka",), "30017160"),
    (("cardigan",), "30010290"),
    (("vest", "waistcoat"), "30010291"),
    (("poncho",), "30017161"),
]
DEFAULT_JACKET_CODE = "30010288"

CAP_TYPE_CODE = "30010323"
MATERIAL_CODE = "30000720"
SWEATER_TYPE_CODE = "30010306"
HOODED_CODE = "30002654"
NOT_HOODED_CODE = "30002960"


@dataclass
class GpcProfile:
    code: str
    description: str
    segment_id: str
    segment_name: str
    family_id: str
    family_name: str
    class_id: str
    class_name: str
    brick_id: str
    brick_name: str
    google_category: Optional[str] = None
    structured_data: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _lookup(value: Optional[str], table, default: Optional[str]) -> Optional[str]:
    normalized = _norm(value)
    for tokens, code in table:
        if any(token in normalized for token in tokens):
            return code
    return default


def normalize_style(style: Optional[str]) -> str:
    normalized = _norm(style)
    if not normalized:
        return ""
    if "cap" in normalized:
        return "cap"
    if "hoodie" in normalized or "sweater" in normalized or "pullover" in normalized:
        return "sweater"
    if "jacket" in normalized or "coat" in normalized or "blazer" in normalized:
        return "jacket"
    return "shirt"


def _hooded_code(clothing_feature: Optional[str]) -> Optional[str]:
    normalized = _norm(clothing_feature)
    if not normalized:
        return None
    if any(token in normalized for token in ("hætte", "hood")):
        return HOODED_CODE
    return NOT_HOODED_CODE


def _shirt_type(style: str) -> str:
    normalized = _norm(style)
    if "t-shirt" in normalized:
        return "30010301"
    if "polo" in normalized:
        return "30010300"
    return "30010298"


def _build_attributes(profile_key, style, target_gender, age_group, sleeve_length, clothing_feature):
    attributes = {
        ATTR_AGE: _lookup(age_group, AGE_MAP, DEFAULT_AGE_CODE),
        ATTR_GENDER: _lookup(target_gender, GENDER_MAP, DEFAULT_GENDER_CODE),
    }

    if profile_key == "cap":
        attributes[ATTR_CAP_TYPE] = CAP_TYPE_CODE
        return attributes

    if _norm(sleeve_length):
        attributes[ATTR_SLEEVE] = _lookup(sleeve_length, SLEEVE_MAP, OTHER_SLEEVE_CODE)

    attributes[ATTR_MATERIAL] = MATERIAL_CODE

    if profile_key == "shirt":
        attributes[ATTR_SHIRT_TYPE] = _shirt_type(style)
    elif profile_key in ("sweater", "jacket"):
        if profile_key == "sweater":
            attributes[ATTR_SWEATER_TYPE] = SWEATER_TYPE_CODE
        else:
            attributes[ATTR_JACKET_TYPE] = _lookup(style, JACKET_TYPES, DEFAULT_JACKET_CODE)
        hooded = _hooded_code(clothing_feature)
        if hooded:
            attributes[ATTR_HOODED] = hooded

    return attributes


def derive_gpc_profile(
    style: Optional[str],
    target_gender: Optional[str] = None,
    age_group: Optional[str] = None,
    sleeve_length: Optional[str] = None,
    clothing_feature: Optional[str] = None,
) -> Optional[GpcProfile]:
    """
    GPC brick plus attribute codes for a garment style.

    Returns None when the style is blank.
    """
    profile_key = normalize_style(style)
    if not profile_key:
        return None

    code, google_category = BASE_PROFILES[profile_key]
    segment, family, klass, brick = code.split("-")
    if profile_key == "cap":
        names = ("Clothing", "Clothing", "Clothing Accessories", "Headwear")
    else:
        brick_name = {
            "shirt": _TSHIRT_BRICK[1],
            "sweater": _SWEATER_BRICK[1],
            "jacket": _JACKET_BRICK[1],
        }[profile_key]
        names = ("Clothing", "Clothing", "Upper Body Wear/Tops", brick_name)

    return GpcProfile(
        code=code,
        description=" > ".join(names),
        segment_id=segment,
        segment_name=names[0],
        family_id=family,
        family_name=names[1],
        class_id=klass,
        class_name=names[2],
        brick_id=brick,
        brick_name=names[3],
        google_category=google_category,
        attributes=_build_attributes(
            profile_key, style, target_gender, age_group, sleeve_length, clothing_feature
        ),
    )


def format_attributes(attributes: Dict[str, str]) -> Optional[str]:
    entries = [f"{attr_id}={value}" for attr_id, value in attributes.items() if value]
    return ";".join(entries) if entries else None


def profile_to_column_updates(profile: GpcProfile) -> Dict[str, Optional[str]]:
    return {
        COL_GPC_CODE: profile.code,
        COL_GPC_ATTRIBUTES: format_attributes(profile.attributes),
        COL_GOOGLE_PRODUCT_CATEGORY: profile.google_category,
        COL_STRUCTURED_DATA: profile.structured_data,
        COL_GPC_DESCRIPTION: profile.description,
        COL_GPC_SEGMENT: profile.segment_id,
        COL_GPC_SEGMENT_NAME: profile.segment_name,
        COL_GPC_FAMILY: profile.family_id,
        COL_GPC_FAMILY_NAME: profile.family_name,
        COL_GPC_CLASS: profile.class_id,
        COL_GPC_CLASS_NAME: profile.class_name,
        COL_GPC_BRICK: profile.brick_id,
        COL_GPC_BRICK_NAME: profile.brick_name,
    }


def profile_to_metafields(profile: GpcProfile) -> Dict[str, Optional[str]]:
    return {
        "gpc_code": profile.code,
        "gpc_attributes": format_attributes(profile.attributes),
        "google_product_category": profile.google_category,
        "structured_data": profile.structured_data,
        "gpc_description": profile.description,
        "gpc_segment": profile.segment_id,
        "gpc_segment_name": profile.segment_name,
        "gpc_family": profile.family_id,
        "gpc_family_name": profile.family_name,
        "gpc_class": profile.class_id,
        "gpc_class_name": profile.class_name,
        "gpc_brick": profile.brick_id,
        "gpc_brick_name": profile.brick_name,
    }


# ---------------------------------------------------------------------------
# Pattern metaobject handles
# ---------------------------------------------------------------------------

PATTERN_HANDLE_MAP = {
    "solid": "solid", "solid color": "solid", "solid colour": "solid", "plain": "solid",
    "striped": "striped", "stribet": "striped",
    "tie dye": "tie-dye", "tie-dye": "tie-dye", "tie dye pattern": "tie-dye",
    "geometric": "geometric", "geo": "geometric",
    "floral": "floral", "flower": "floral",
    "camouflage": "camouflage", "camo": "camouflage",
    "animal print": "animalprint", "animal-print": "animalprint", "animalprint": "animalprint",
    "photo print": "fotoprint", "photo-print": "fotoprint", "photographic": "fotoprint",
    "fotoprint": "fotoprint",
    "marl": "marl", "marled": "marl",
    "dotted": "dotted", "polka dot": "dotted", "polka-dot": "dotted", "polka dot pattern": "dotted",
    "checked": "checked", "checkered": "checked", "tartan": "checked",
    "cartoon": "cartoon", "graphic": "cartoon",
    "xmas": "xmas", "christmas": "xmas", "festive": "xmas",
    "abstract": "abstrakt", "abstrakt": "abstrakt",
    "sport": "sport", "sporty": "sport",
    "musik": "musik", "music": "musik", "musical": "musik",
    "surfing": "surfing", "surf": "surfing",
    "natur": "natur", "nature": "natur", "natural": "natur",
}


def map_pattern_to_handle(pattern: Optional[str]) -> Optional[str]:
    """Free-text pattern ("Polka Dot") -> pattern metaobject handle ("dotted")."""
    normalized = re.sub(r"[^a-z0-9]+", " ", (pattern or "").lower()).strip()
    if not normalized:
        return None
    return PATTERN_HANDLE_MAP.get(normalized) or PATTERN_HANDLE_MAP.get(normalized.replace(" ", "-"))


def pattern_lookup_candidates(pattern: str) -> List[str]:
    """Values to try against the metaobject handles, most specific first."""
    candidates = [pattern]
    handle = map_pattern_to_handle(pattern)
    if handle and handle != pattern:
        candidates.append(handle)
    return candidates
