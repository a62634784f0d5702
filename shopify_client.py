#!/usr/bin/env python3
"""
Shopify Admin GraphQL client for the listing saga.

Transport and GraphQL-level errors raise ShopifyApiError and are retried
when transient. Field-level userErrors raise ShopifyUserError and are
never retried.
"""

import logging
from typing import Dict, List, Optional

import requests

from backoff import RetryPolicy, is_transient_error

PRODUCT_CREATE = """
mutation productCreate($input: ProductInput!) {
  productCreate(input: $input) {
    product { id legacyResourceId handle options { id name } variants(first: 1) { nodes { id title inventoryItem { id } } } }
    userErrors { field message }
  }
}
"""

VARIANTS_BULK_CREATE = """
mutation productVariantsBulkCreate($productId: ID!, $variants: [ProductVariantsBulkInput!]!, $strategy: ProductVariantsBulkCreateStrategy) {
  productVariantsBulkCreate(productId: $productId, variants: $variants, strategy: $strategy) {
    productVariants { id title sku inventoryItem { id } }
    userErrors { field message }
  }
}
"""

VARIANTS_BULK_UPDATE = """
mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    productVariants { id title sku inventoryItem { id } }
    userErrors { field message }
  }
}
"""

INVENTORY_SET_QUANTITIES = """
mutation inventorySetQuantities($input: InventorySetQuantitiesInput!) {
  inventorySetQuantities(input: $input) {
    inventoryAdjustmentGroup { id }
    userErrors { field message }
  }
}
"""

METAFIELDS_SET = """
mutation metafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields { key namespace value type ownerType }
    userErrors { field message }
  }
}
"""

STAGED_UPLOADS_CREATE = """
mutation stagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    stagedTargets { url resourceUrl parameters { name value } }
    userErrors { field message }
  }
}
"""

PRODUCT_CREATE_MEDIA = """
mutation productCreateMedia($productId: ID!, $media: [CreateMediaInput!]!) {
  productCreateMedia(productId: $productId, media: $media) {
    media { id alt status }
    userErrors { field message }
  }
}
"""

FETCH_METAOBJECTS = """
query FetchMetaobjects($type: String!, $cursor: String) {
  metaobjects(first: 100, type: $type, after: $cursor) {
    nodes { id handle }
    pageInfo { hasNextPage endCursor }
  }
}
"""


class ShopifyApiError(Exception):
    """HTTP or GraphQL-level failure talking to Shopify."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ShopifyUserError(Exception):
    """Shopify rejected the input (non-empty userErrors)."""

    def __init__(self, operation: str, user_errors: List[Dict]):
        self.operation = operation
        self.user_errors = user_errors
        details = "; ".join(
            error.get("message", "") + (f" ({'.'.join(error['field'])})" if error.get("field") else "")
            for error in user_errors
        )
        super().__init__(f"{operation} failed: {details}")


def ensure_no_user_errors(operation: str, payload: Dict) -> Dict:
    user_errors = payload.get("userErrors") or []
    if user_errors:
        raise ShopifyUserError(operation, user_errors)
    return payload


class ShopifyClient:
    """Thin wrapper over the Admin GraphQL endpoint."""

    def __init__(
        self,
        store_domain: str,
        admin_token: str,
        api_version: str = "2025-07",
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        timeout: int = 60,
    ):
        self.endpoint = f"https://{store_domain}/admin/api/{api_version}/graphql.json"
        self.admin_token = admin_token
        self.retry = retry_policy or RetryPolicy(name="shopify", should_retry=is_transient_error)
        self.session = session or requests.Session()
        self.timeout = timeout

    def _post(self, query: str, variables: Optional[dict]) -> Dict:
        response = self.session.post(
            self.endpoint,
            json={"query": query, "variables": variables or {}},
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": self.admin_token,
            },
            timeout=self.timeout,
        )

        if not response.ok:
            logging.error("Shopify API Error: %s %s", response.status_code, response.text[:500])
            raise ShopifyApiError(
                f"Shopify API {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

        payload = response.json()
        if payload.get("errors"):
            message = "; ".join(err.get("message", "") for err in payload["errors"])
            raise ShopifyApiError(f"Shopify GraphQL errors: {message}", status_code=response.status_code)

        if not payload.get("data"):
            raise ShopifyApiError("Shopify GraphQL response missing data", status_code=response.status_code)

        return payload["data"]

    def graphql(self, query: str, variables: Optional[dict] = None, label: str = "graphql") -> Dict:
        return self.retry.run(lambda: self._post(query, variables), label)

    def create_listing(self, product_input: Dict) -> Dict:
        """productCreate; returns the product node (id, handle, options, variants)."""
        data = self.graphql(PRODUCT_CREATE, {"input": product_input}, "productCreate")
        payload = ensure_no_user_errors("productCreate", data["productCreate"])
        return payload.get("product") or {}

    def create_variants(self, product_id: str, variants: List[Dict]) -> List[Dict]:
        data = self.graphql(
            VARIANTS_BULK_CREATE,
            {"productId": product_id, "variants": variants, "strategy": "REMOVE_STANDALONE_VARIANT"},
            "productVariantsBulkCreate",
        )
        payload = ensure_no_user_errors("productVariantsBulkCreate", data["productVariantsBulkCreate"])
        return payload.get("productVariants") or []

    def update_variants(self, product_id: str, variants: List[Dict]) -> List[Dict]:
        """productVariantsBulkUpdate; each input carries the variant id."""
        data = self.graphql(
            VARIANTS_BULK_UPDATE,
            {"productId": product_id, "variants": variants},
            "productVariantsBulkUpdate",
        )
        payload = ensure_no_user_errors("productVariantsBulkUpdate", data["productVariantsBulkUpdate"])
        return payload.get("productVariants") or []

    def set_inventory_quantities(self, quantities: List[Dict]) -> None:
        """Absolute available quantities: [{inventoryItemId, locationId, quantity}]."""
        if not quantities:
            return
        data = self.graphql(
            INVENTORY_SET_QUANTITIES,
            {"input": {
                "name": "available",
                "reason": "correction",
                "ignoreCompareQuantity": True,
                "quantities": quantities,
            }},
            "inventorySetQuantities",
        )
        ensure_no_user_errors("inventorySetQuantities", data["inventorySetQuantities"])

    def set_metafields(self, metafields: List[Dict], label: str = "metafieldsSet") -> List[Dict]:
        """metafieldsSet; each entry carries its own ownerId."""
        if not metafields:
            return []
        data = self.graphql(METAFIELDS_SET, {"metafields": metafields}, label)
        payload = ensure_no_user_errors(label, data["metafieldsSet"])
        return payload.get("metafields") or []

    def create_upload_targets(self, specs: List[Dict]) -> List[Dict]:
        data = self.graphql(STAGED_UPLOADS_CREATE, {"input": specs}, "stagedUploadsCreate")
        payload = ensure_no_user_errors("stagedUploadsCreate", data["stagedUploadsCreate"])
        return payload.get("stagedTargets") or []

    def transfer_upload(self, target: Dict, filename: str, data: bytes, mime_type: str) -> None:
        """Multipart POST of file bytes to a staged upload target."""

        def post():
            form = [(param["name"], param["value"]) for param in target.get("parameters", [])]
            response = self.session.post(
                target["url"],
                data=form,
                files={"file": (filename, data, mime_type)},
                timeout=self.timeout,
            )
            if not response.ok:
                raise ShopifyApiError(
                    f"Failed to upload {filename} to staged target: {response.status_code} {response.text[:200]}",
                    status_code=response.status_code,
                )

        self.retry.run(post, f"upload {filename}")

    def attach_media(self, product_id: str, media: List[Dict]) -> List[Dict]:
        data = self.graphql(
            PRODUCT_CREATE_MEDIA,
            {"productId": product_id, "media": media},
            "productCreateMedia",
        )
        payload = ensure_no_user_errors("productCreateMedia", data["productCreateMedia"])
        return payload.get("media") or []

    def fetch_metaobjects(self, metaobject_type: str) -> List[Dict]:
        """All {id, handle} nodes of one metaobject type."""
        nodes = []
        cursor = None
        while True:
            data = self.graphql(
                FETCH_METAOBJECTS,
                {"type": metaobject_type, "cursor": cursor},
                f"metaobjects {metaobject_type}",
            )
            connection = data["metaobjects"]
            nodes.extend(connection.get("nodes") or [])
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")
        return nodes
