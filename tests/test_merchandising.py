import pytest

from constants import COL_GPC_ATTRIBUTES, COL_GPC_CODE, COL_GPC_SEGMENT
from merchandising import (
    ATTR_GENDER,
    ATTR_HOODED,
    ATTR_SHIRT_TYPE,
    ATTR_SLEEVE,
    DEFAULT_PRICE,
    HOODED_CODE,
    category_column_updates,
    derive_gpc_profile,
    format_attributes,
    map_pattern_to_handle,
    normalize_style,
    pattern_lookup_candidates,
    profile_to_column_updates,
    profile_to_metafields,
    resolve_category,
    resolve_price,
)


class TestPrice:
    @pytest.mark.parametrize("style, price", [
        ("T-shirt", "349"),
        ("Classic Cap", "399"),
        ("Kids Shirt Blue", "299"),
        ("Hoodie", "649"),
        ("Denim Jacket", "1199"),
        ("Long Sleeve Shirt", "699"),
    ])
    def test_known_styles(self, style, price):
        assert resolve_price(style) == price

    def test_unknown_and_blank_styles_use_default(self):
        assert resolve_price("Scarf") == DEFAULT_PRICE
        assert resolve_price(None) == DEFAULT_PRICE
        assert resolve_price("  ") == DEFAULT_PRICE

    def test_partial_style_matches_containing_key(self):
        assert resolve_price("hood") == "649"


class TestCategory:
    def test_style_mapping(self):
        mapping = resolve_category("Hoodie")
        assert mapping.brick_id == "10001351"
        assert mapping.code == "67000000-67010000-67010800-10001351"
        assert mapping.taxonomy_id.startswith("gid://shopify/TaxonomyCategory/")

    def test_accessory_category_falls_back_to_cap(self):
        assert resolve_category("Bandana", "Tilbehør").brick_id == "10001329"
        assert resolve_category(None, "Accessories").brick_id == "10001329"

    def test_everything_else_falls_back_to_tshirt(self):
        assert resolve_category("Scarf", "Tops").brick_id == "10001352"

    def test_column_updates(self):
        updates = category_column_updates(resolve_category("Cap"))
        assert updates[COL_GPC_CODE] == "67000000-67010000-67010100-10001329"
        assert updates[COL_GPC_SEGMENT] == "67000000"


class TestGpcProfile:
    def test_blank_style_has_no_profile(self):
        assert derive_gpc_profile("") is None
        assert derive_gpc_profile(None) is None

    @pytest.mark.parametrize("style, key", [
        ("Trucker Cap", "cap"),
        ("Hoodie", "sweater"),
        ("Rain Coat", "jacket"),
        ("Bali Shirt", "shirt"),
    ])
    def test_normalize_style(self, style, key):
        assert normalize_style(style) == key

    def test_tshirt_profile(self):
        profile = derive_gpc_profile("T-shirt", target_gender="Female", sleeve_length="Kort")
        assert profile.brick_id == "10001352"
        assert profile.attributes[ATTR_GENDER] == "30003891"
        assert profile.attributes[ATTR_SLEEVE] == "30010304"
        assert profile.attributes[ATTR_SHIRT_TYPE] == "30010301"

    def test_female_is_not_read_as_male(self):
        assert derive_gpc_profile("T-shirt", target_gender="female").attributes[ATTR_GENDER] == "30003891"
        assert derive_gpc_profile("T-shirt", target_gender="Male").attributes[ATTR_GENDER] == "30004039"

    def test_hooded_sweater(self):
        profile = derive_gpc_profile("Hoodie", clothing_feature="Med hætte")
        assert profile.attributes[ATTR_HOODED] == HOODED_CODE

    def test_cap_has_no_sleeve_attribute(self):
        profile = derive_gpc_profile("Cap", sleeve_length="Long")
        assert ATTR_SLEEVE not in profile.attributes

    def test_columns_and_metafields_agree(self):
        profile = derive_gpc_profile("Jacket")
        columns = profile_to_column_updates(profile)
        metafields = profile_to_metafields(profile)
        assert columns[COL_GPC_CODE] == metafields["gpc_code"] == profile.code
        assert columns[COL_GPC_ATTRIBUTES] == format_attributes(profile.attributes)

    def test_format_attributes(self):
        assert format_attributes({"1": "a", "2": "", "3": "c"}) == "1=a;3=c"
        assert format_attributes({}) is None


class TestPatterns:
    @pytest.mark.parametrize("text, handle", [
        ("Polka Dot", "dotted"),
        ("tie dye", "tie-dye"),
        ("Stribet", "striped"),
        ("Camo", "camouflage"),
    ])
    def test_handle_map(self, text, handle):
        assert map_pattern_to_handle(text) == handle

    def test_unknown_pattern(self):
        assert map_pattern_to_handle("Paisley") is None
        assert map_pattern_to_handle("") is None

    def test_candidates_try_raw_value_first(self):
        assert pattern_lookup_candidates("Polka Dot") == ["Polka Dot", "dotted"]
        assert pattern_lookup_candidates("Paisley") == ["Paisley"]
