import re

from constants import (
    COL_GPC_CODE,
    COL_PRICE,
    COL_TAGS,
    COL_TITLE,
    DEFAULT_SIZE,
)
from fakes import make_content
from listing_builder import (
    VariantSpec,
    build_handle,
    build_listing,
    derive_sizes,
    merge_tags,
    metafields_from_row,
    parse_quantity,
    parse_sizes,
    slugify,
    variant_input,
)


BASE_ROW = {
    "ProductKey": "ABC123",
    "Title": "Sheet Title",
    "Description": "<p>Sheet copy</p>",
    "MetaDescription": "Sheet meta",
    "Tags": "vintage, upcycled",
    "Style": "Hoodie",
    "Sizes": "S, M",
    "Stock: S": "2",
    "Stock: M": "0",
    "MetafieldFabric": "Wool",
}


class TestHelpers:
    def test_slugify(self):
        assert slugify("  Blue Tee / Size M ") == "blue-tee-size-m"

    def test_explicit_handle_is_slugified_without_suffix(self):
        assert build_handle({"Handle": "My Handle!"}) == "my-handle"

    def test_generated_handle_has_timestamp_suffix(self):
        assert re.fullmatch(r"abc123-\d+", build_handle({"ProductKey": "ABC123", "Title": "Tee"}))

    def test_parse_sizes_filters_unknown(self):
        assert parse_sizes("S, M, XXXL") == ["S", "M"]
        assert parse_sizes("") == [DEFAULT_SIZE]
        assert parse_sizes("XXXL") == [DEFAULT_SIZE]

    def test_parse_quantity(self):
        assert parse_quantity("3") == 3
        assert parse_quantity("2.0") == 2
        assert parse_quantity("-4") == 0
        assert parse_quantity("many") is None
        assert parse_quantity("") is None

    def test_derive_sizes_uses_stock_columns(self):
        assert derive_sizes({"Stock: M": "1", "Stock: XS": "4", "Stock: L": "0"}) == "XS, M"
        assert derive_sizes({}) == DEFAULT_SIZE

    def test_merge_tags_keeps_sheet_first(self):
        assert merge_tags("a, b", ["b", "c", " "]) == ["a", "b", "c"]
        assert merge_tags(None, None) == []


class TestMetafields:
    def test_row_values_win_over_generated(self):
        generated = make_content(metafields={"fabric": "Cotton", "color": "Red"})
        fields = {f["key"]: f["value"] for f in metafields_from_row({"MetafieldFabric": "Wool"}, generated)}
        assert fields == {"fabric": "Wool", "color": "Red"}

    def test_all_entries_are_custom_text(self):
        fields = metafields_from_row({"MetafieldColor": "Blue"})
        assert fields == [{"namespace": "custom", "key": "color", "type": "single_line_text_field", "value": "Blue"}]


class TestVariantInput:
    def test_uses_option_id_when_known(self):
        payload = variant_input(VariantSpec("S", "ABC-S", "S", "649", 2), "649", {"Size": "opt-1"}, "loc-1")
        assert payload["optionValues"] == [{"name": "S", "optionId": "opt-1"}]
        assert payload["inventoryItem"] == {"sku": "ABC-S", "tracked": True}
        assert payload["inventoryQuantities"] == [{"locationId": "loc-1", "availableQuantity": 2}]
        assert payload["inventoryPolicy"] == "DENY"

    def test_without_location_no_inventory(self):
        payload = variant_input(VariantSpec("M", "ABC-M", "M", None, 5), "649", {}, None)
        assert payload["price"] == "649"
        assert payload["optionValues"] == [{"name": "M", "optionName": "Size"}]
        assert "inventoryQuantities" not in payload


class TestBuildListing:
    def test_row_values_win(self):
        build = build_listing(BASE_ROW, make_content())

        assert build.title == "Sheet Title"
        assert build.product_input["descriptionHtml"] == "<p>Sheet copy</p>"
        assert build.product_input["status"] == "DRAFT"
        assert build.tags == ["vintage", "upcycled", "tee"]
        assert build.price == "649"

    def test_sizes_become_variants(self):
        build = build_listing(BASE_ROW)

        assert build.has_options
        assert [v.sku for v in build.variants] == ["ABC123-S", "ABC123-M"]
        assert [v.inventory_quantity for v in build.variants] == [2, 0]
        assert build.variant_metafields[0] == [
            {"namespace": "custom", "key": "size", "type": "single_line_text_field", "value": "S"}
        ]

    def test_single_size_has_no_options(self):
        row = dict(BASE_ROW, Sizes="")
        build = build_listing(row)
        assert not build.has_options
        assert [v.size for v in build.variants] == [DEFAULT_SIZE]

    def test_generated_content_fills_blanks(self):
        row = {"ProductKey": "ABC123"}
        build = build_listing(row, make_content(), default_vendor="Pleasant")

        assert build.title == "Upcycled Striped Tee"
        assert build.product_input["vendor"] == "Pleasant"
        assert build.product_input["productType"] == "Tops"
        assert build.price == "349"
        assert build.sheet_updates[COL_TITLE] == "Upcycled Striped Tee"
        assert build.sheet_updates[COL_TAGS] == "upcycled, tee"

    def test_explicit_price_and_category(self):
        build = build_listing(dict(BASE_ROW, Price="100"))
        assert build.sheet_updates[COL_PRICE] == "100"
        assert build.product_input["category"] == build.category.taxonomy_id
        assert build.sheet_updates[COL_GPC_CODE] == build.category.code

    def test_no_product_options_on_create(self):
        assert "productOptions" not in build_listing(BASE_ROW).product_input
