#!/usr/bin/env python3
"""
Image filename parsing and deterministic position assignment.

Uploaded images are named <productKey>_<role>.<ext>, e.g. ABC123_main.jpg.
The role decides both the ledger image slot and the listing media order.
"""

import re
from collections import defaultdict
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Dict, Iterable, List, Optional

from constants import ROLE_ORDER

PRESERVED_ROLES = ("model", "model2")
FALLBACK_ROLE = "misc"


@dataclass
class RawImageFile:
    """A file as listed by external storage."""
    file_id: str
    filename: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    modified_time: Optional[str] = None  # ISO-8601


@dataclass
class ImageAsset:
    """A file bound to a product role and listing position."""
    file_id: str
    filename: str
    role: str
    position: int
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    modified_time: Optional[str] = None


@dataclass(frozen=True)
class ParsedFilename:
    product_key: str
    role: str


def parse_filename(filename: str) -> Optional[ParsedFilename]:
    """
    Split a filename into product key and role.

    Returns None for names that are not <key>_<role>.<ext>.
    """
    base = (filename or "").strip()
    underscore = base.find("_")
    if underscore <= 0:
        return None

    product_key = base[:underscore].strip()
    if not product_key:
        return None

    remainder = base[underscore + 1:]
    dot = remainder.rfind(".")
    if dot <= 0 or dot == len(remainder) - 1:
        return None

    role_token = remainder[:dot].strip().lower()
    if not role_token:
        return None

    if role_token in PRESERVED_ROLES:
        role = role_token
    else:
        role = re.sub(r"[^a-z0-9]", "", role_token) or FALLBACK_ROLE

    return ParsedFilename(product_key=product_key, role=role)


def _compare_in_bucket(a: RawImageFile, b: RawImageFile) -> int:
    if a.modified_time and b.modified_time and a.modified_time != b.modified_time:
        return -1 if a.modified_time < b.modified_time else 1
    if a.filename != b.filename:
        return -1 if a.filename < b.filename else 1
    if a.file_id != b.file_id:
        return -1 if a.file_id < b.file_id else 1
    return 0


def _ordered_roles(roles: Iterable[str]) -> List[str]:
    extra = sorted(role for role in roles if role not in ROLE_ORDER)
    return [role for role in ROLE_ORDER if role in roles] + extra


def assign_positions(files: Iterable[RawImageFile]) -> List[ImageAsset]:
    """
    Order files by role, then timestamp/filename, and number them 1..n.

    The same set of files always yields the same positions, whatever order
    they are passed in. Unparseable filenames are left out.
    """
    # Canonical input order so the bucket sort below cannot depend on caller order
    canonical = sorted(files, key=lambda f: (f.filename, f.file_id))

    buckets: Dict[str, List[RawImageFile]] = defaultdict(list)
    for file in canonical:
        parsed = parse_filename(file.filename)
        if parsed is None:
            continue
        buckets[parsed.role].append(file)

    assets = []
    position = 1
    for role in _ordered_roles(set(buckets)):
        for file in sorted(buckets[role], key=cmp_to_key(_compare_in_bucket)):
            assets.append(ImageAsset(
                file_id=file.file_id,
                filename=file.filename,
                role=role,
                position=position,
                mime_type=file.mime_type,
                size_bytes=file.size_bytes,
                modified_time=file.modified_time,
            ))
            position += 1

    return assets


def group_by_product_key(files: Iterable[RawImageFile]) -> Dict[str, List[RawImageFile]]:
    """
    Group parseable files by product key, case-insensitively.

    The returned key uses the spelling of the group's first filename.
    """
    grouped: Dict[str, List[RawImageFile]] = {}
    spelling: Dict[str, str] = {}

    for file in sorted(files, key=lambda f: (f.filename, f.file_id)):
        parsed = parse_filename(file.filename)
        if parsed is None:
            continue
        normalized = parsed.product_key.lower()
        if normalized not in spelling:
            spelling[normalized] = parsed.product_key
            grouped[parsed.product_key] = []
        grouped[spelling[normalized]].append(file)

    return grouped
