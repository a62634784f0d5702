#!/usr/bin/env python3
"""
Ledger layout and listing constants shared by staging and publishing.
"""

# Spreadsheet tabs
PRODUCTS_TAB = "Products"
LOGS_TAB = "Logs"
ERRORS_TAB = "Errors"
CONFIG_TAB = "Config"

# Products tab column headers
COL_BATCH_ID = "BatchID"
COL_STATUS = "Status"
COL_ROW_ID = "RowID"
COL_PRODUCT_ID = "ShopifyProductId"
COL_PRODUCT_KEY = "ProductKey"
COL_SKU = "SKU"
COL_TITLE = "Title"
COL_DESCRIPTION = "Description"
COL_META_DESCRIPTION = "MetaDescription"
COL_TAGS = "Tags"
COL_STYLE = "Style"
COL_CATEGORY = "Category"
COL_COLOR = "Color"
COL_PATTERN = "Pattern"
COL_PRICE = "Price"
COL_VENDOR = "Vendor"
COL_HANDLE = "Handle"
COL_MAIN_IMAGE = "MainImageId"
COL_CLOSE_IMAGE = "CloseImageId"
COL_MODEL_IMAGE = "ModelImageId"
COL_MODEL2_IMAGE = "Model2ImageId"
COL_CREATED_AT = "CreatedAt"
COL_UPDATED_AT = "UpdatedAt"
COL_SIZES = "Sizes"

COL_METAFIELD_FABRIC = "MetafieldFabric"
COL_METAFIELD_COLOR = "MetafieldColor"
COL_METAFIELD_PATTERN = "MetafieldPattern"
COL_METAFIELD_TARGET_GENDER = "MetafieldTargetGender"
COL_METAFIELD_AGE_GROUP = "MetafieldAgeGroup"
COL_METAFIELD_SLEEVE_LENGTH = "MetafieldSleeveLength"
COL_METAFIELD_CLOTHING_FEATURE = "MetafieldClothingFeature"

COL_GPC_CODE = "GPCCode"
COL_GPC_ATTRIBUTES = "GPCAttributes"
COL_GOOGLE_PRODUCT_CATEGORY = "GoogleProductCategory"
COL_STRUCTURED_DATA = "StructuredData"
COL_GPC_DESCRIPTION = "GPCDescription"
COL_GPC_SEGMENT = "GPCSegment"
COL_GPC_SEGMENT_NAME = "GPCSegmentName"
COL_GPC_FAMILY = "GPCFamily"
COL_GPC_FAMILY_NAME = "GPCFamilyName"
COL_GPC_CLASS = "GPCClass"
COL_GPC_CLASS_NAME = "GPCClassName"
COL_GPC_BRICK = "GPCBrick"
COL_GPC_BRICK_NAME = "GPCBrickName"

# Row lifecycle
STATUS_PENDING = "PENDING_REVIEW"
STATUS_APPROVED = "APPROVED"
STATUS_CREATED = "CREATED"
STATUS_COMPLETE = "COMPLETE"

# Staff approve in either language
APPROVED_VALUES = ("APPROVED", "GODKENDT")
LOCKED_STATUSES = (STATUS_APPROVED, STATUS_COMPLETE)

# Forward-only ordering used to refuse status regressions
STATUS_RANK = {
    STATUS_PENDING: 0,
    STATUS_APPROVED: 1,
    "GODKENDT": 1,
    STATUS_CREATED: 2,
    STATUS_COMPLETE: 3,
}

# Sizes and their stock columns, in listing order
SIZE_OPTIONS = ["One-size", "XS", "S", "M", "L", "XL"]
DEFAULT_SIZE = "One-size"

SIZE_STOCK_COLUMNS = {size: f"Stock: {size}" for size in SIZE_OPTIONS}

# Image roles in listing order; any other role sorts after these
ROLE_ORDER = ["main", "close", "model", "model2"]

ROLE_COLUMN_MAP = {
    "main": COL_MAIN_IMAGE,
    "close": COL_CLOSE_IMAGE,
    "model": COL_MODEL_IMAGE,
    "model2": COL_MODEL2_IMAGE,
}

IMAGE_COLUMNS = list(ROLE_COLUMN_MAP.values())

# Columns the content generator is asked to fill
CONTENT_COLUMNS = [COL_TITLE, COL_DESCRIPTION, COL_META_DESCRIPTION, COL_TAGS]

# Ledger column -> metafield key (namespace "custom")
METAFIELD_COLUMN_MAP = {
    COL_METAFIELD_FABRIC: "fabric",
    COL_METAFIELD_COLOR: "color",
    COL_METAFIELD_PATTERN: "pattern",
    COL_METAFIELD_TARGET_GENDER: "target_gender",
    COL_METAFIELD_AGE_GROUP: "age_group",
    COL_METAFIELD_SLEEVE_LENGTH: "sleeve_length",
    COL_METAFIELD_CLOTHING_FEATURE: "clothing_feature",
    COL_GPC_CODE: "gpc_code",
    COL_GPC_ATTRIBUTES: "gpc_attributes",
    COL_GOOGLE_PRODUCT_CATEGORY: "google_product_category",
    COL_STRUCTURED_DATA: "structured_data",
    COL_GPC_DESCRIPTION: "gpc_description",
    COL_GPC_SEGMENT: "gpc_segment",
    COL_GPC_SEGMENT_NAME: "gpc_segment_name",
    COL_GPC_FAMILY: "gpc_family",
    COL_GPC_FAMILY_NAME: "gpc_family_name",
    COL_GPC_CLASS: "gpc_class",
    COL_GPC_CLASS_NAME: "gpc_class_name",
    COL_GPC_BRICK: "gpc_brick",
    COL_GPC_BRICK_NAME: "gpc_brick_name",
}

METAFIELD_KEYS = list(METAFIELD_COLUMN_MAP.values())
METAFIELD_NAMESPACE = "custom"

# Header row written when a fresh workbook ledger is created
DEFAULT_PRODUCT_COLUMNS = [
    COL_BATCH_ID, COL_STATUS, COL_ROW_ID, COL_PRODUCT_ID, COL_PRODUCT_KEY, COL_SKU,
    COL_TITLE, COL_DESCRIPTION, COL_META_DESCRIPTION, COL_TAGS, COL_STYLE,
    COL_CATEGORY, COL_COLOR, COL_PATTERN, COL_PRICE, COL_VENDOR, COL_HANDLE,
    COL_MAIN_IMAGE, COL_CLOSE_IMAGE, COL_MODEL_IMAGE, COL_MODEL2_IMAGE,
    COL_CREATED_AT, COL_UPDATED_AT,
    *SIZE_STOCK_COLUMNS.values(),
    COL_SIZES,
    *METAFIELD_COLUMN_MAP.keys(),
]

LOG_COLUMNS = ["Timestamp", "Action", "ProductKey", "Message"]
ERROR_COLUMNS = ["Timestamp", "ProductKey", "Step", "Message", "Hint", "PayloadSnippet"]

PAYLOAD_SNIPPET_LIMIT = 500
