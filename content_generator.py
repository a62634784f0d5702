#!/usr/bin/env python3
"""
AI listing copy for ledger rows via the Claude Messages API.
"""

import base64
import json
import logging
import re
from typing import Any, Dict, List, Optional

import anthropic
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from backoff import RetryPolicy, is_transient_error
from constants import (
    COL_DESCRIPTION,
    COL_META_DESCRIPTION,
    COL_PRICE,
    COL_PRODUCT_KEY,
    COL_SKU,
    COL_STATUS,
    COL_STYLE,
    COL_TAGS,
    COL_TITLE,
    COL_VENDOR,
    METAFIELD_COLUMN_MAP,
)
from image_prep import prepare_for_vision
from storage import FileContent

DEFAULT_MODEL = "claude-sonnet-4-20250514"

# Metafield keys the model may fill
GENERATED_METAFIELD_KEYS = (
    "fabric", "color", "pattern", "target_gender", "age_group", "sleeve_length", "clothing_feature",
)

PROMPT = """You are a seasoned apparel copywriter for an upcycled clothing brand. Write concise,
engaging ecommerce copy in the brand's tone for the product below. If a photo is attached,
use it to identify the garment style, colour and pattern.

{product_json}

Respect existing non-empty fields; only fill missing values.

Respond with JSON only:
{{
    "title": "...",
    "description": "HTML product description",
    "meta_description": "max 160 characters",
    "tags": ["...", "..."],
    "category": "...",
    "style": "e.g. T-shirt, Hoodie, Cap, Jacket",
    "color": "...",
    "pattern": "...",
    "vendor": "optional",
    "metafields": {{
        "fabric": "...",
        "color": "...",
        "pattern": "...",
        "target_gender": "...",
        "age_group": "...",
        "sleeve_length": "...",
        "clothing_feature": "..."
    }}
}}"""


class ContentValidationError(ValueError):
    """The model's reply does not match the expected content schema."""


class GeneratedContent(BaseModel):
    """Copy drafted by the model for one ledger row."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    meta_description: str
    tags: List[str] = Field(..., min_length=1)
    category: str
    style: str
    color: str
    pattern: str
    vendor: Optional[str] = None
    metafields: Dict[str, str] = Field(default_factory=dict)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v: Any) -> Any:
        """Accept "a, b" as well as ["a", "b"]; blank tags are dropped."""
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, list):
            return [tag.strip() for tag in v if isinstance(tag, str) and tag.strip()]
        return v

    @field_validator("vendor", mode="before")
    @classmethod
    def blank_vendor(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("metafields", mode="before")
    @classmethod
    def known_metafields(cls, v: Any) -> Dict[str, str]:
        """Keep only the metafield keys the model is asked to fill."""
        if not isinstance(v, dict):
            return {}
        metafields = {}
        for key in GENERATED_METAFIELD_KEYS:
            value = v.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            if isinstance(value, str) and value.strip():
                metafields[key] = value.strip()
        return metafields


def _describe_errors(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"])
        parts.append(f"{location}: {err['msg']}" if location else err["msg"])
    return "; ".join(parts)


def parse_generated_content(response_text: str) -> GeneratedContent:
    """
    Extract and validate the JSON object in a model reply.

    Raises:
        ContentValidationError: no JSON object, or the object fails GeneratedContent
    """
    # Extract JSON from response (handle markdown code blocks)
    json_match = re.search(r"\{[\s\S]*\}", response_text or "")
    if not json_match:
        raise ContentValidationError(f"Could not parse JSON from Claude response: {(response_text or '')[:200]}")

    try:
        return GeneratedContent.model_validate_json(json_match.group())
    except ValidationError as e:
        raise ContentValidationError(f"Generated content failed validation: {_describe_errors(e)}") from e


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, (anthropic.APIConnectionError, anthropic.RateLimitError, anthropic.InternalServerError)):
        return True
    return is_transient_error(exc)


def build_product_payload(row_values: Dict[str, str]) -> Dict:
    return {
        "productKey": row_values.get(COL_PRODUCT_KEY),
        "sku": row_values.get(COL_SKU),
        "vendor": row_values.get(COL_VENDOR),
        "style": row_values.get(COL_STYLE),
        "price": row_values.get(COL_PRICE),
        "status": row_values.get(COL_STATUS),
        "existing": {
            "title": row_values.get(COL_TITLE),
            "description": row_values.get(COL_DESCRIPTION),
            "metaDescription": row_values.get(COL_META_DESCRIPTION),
            "tags": row_values.get(COL_TAGS),
        },
        "metafields": {
            key: row_values[column]
            for column, key in METAFIELD_COLUMN_MAP.items()
            if key in GENERATED_METAFIELD_KEYS and row_values.get(column)
        },
    }


class ContentGenerator:
    """Claude-backed copywriter for one ledger row at a time."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        client=None,
        retry_policy: Optional[RetryPolicy] = None,
        max_tokens: int = 2000,
    ):
        self.client = client or anthropic.Anthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.retry = retry_policy or RetryPolicy(name="claude", retries=2, should_retry=_is_retryable)

    def _build_messages(self, row_values: Dict[str, str], image: Optional[FileContent]) -> List[Dict]:
        prompt = PROMPT.format(
            product_json="Product data:\n\n" + json.dumps(build_product_payload(row_values), indent=2)
        )
        content = []
        if image is not None:
            try:
                jpeg, media_type = prepare_for_vision(image.data, image.mime_type)
                content.append({
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": media_type,
                        "data": base64.standard_b64encode(jpeg).decode("utf-8"),
                    },
                })
            except Exception as e:
                logging.warning("Could not prepare image for Claude, sending text only: %s", e)
        content.append({"type": "text", "text": prompt})
        return [{"role": "user", "content": content}]

    def generate(self, row_values: Dict[str, str], image: Optional[FileContent] = None) -> GeneratedContent:
        """
        Draft listing copy for a row.

        Transient API errors are retried; a reply that fails validation
        raises ContentValidationError straight away.
        """
        messages = self._build_messages(row_values, image)

        message = self.retry.run(
            lambda: self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=messages,
            ),
            f"generate {row_values.get(COL_PRODUCT_KEY, '')}",
        )

        response_text = "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )
        logging.debug("Claude raw response: %s", response_text)
        return parse_generated_content(response_text)
