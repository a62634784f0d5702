#!/usr/bin/env python3
"""
Per-process cache of Shopify metaobject handles -> ids.

One instance lives on each pipeline (and each test). Concurrent callers
asking for the same type while it is loading wait on the same fetch.
"""

import logging
import re
import threading
from concurrent.futures import Future
from typing import Dict, Optional


def normalize_handle(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", (value or "").strip().lower())


class MetaobjectCache:
    def __init__(self, shopify_client):
        self.shopify = shopify_client
        self._cache: Dict[str, Dict[str, str]] = {}
        self._pending: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def load(self, metaobject_type: str) -> Dict[str, str]:
        """Return {normalized handle: id} for a metaobject type, fetching once."""
        with self._lock:
            cached = self._cache.get(metaobject_type)
            if cached is not None:
                return cached
            pending = self._pending.get(metaobject_type)
            owner = pending is None
            if owner:
                pending = Future()
                self._pending[metaobject_type] = pending

        if not owner:
            return pending.result()

        try:
            lookup = {}
            for node in self.shopify.fetch_metaobjects(metaobject_type):
                handle = normalize_handle(node.get("handle") or "")
                if handle and node.get("id"):
                    lookup[handle] = node["id"]
        except Exception as e:
            with self._lock:
                self._pending.pop(metaobject_type, None)
            pending.set_exception(e)
            raise

        with self._lock:
            self._cache[metaobject_type] = lookup
            self._pending.pop(metaobject_type, None)
        pending.set_result(lookup)
        logging.info("Loaded %d %s metaobjects", len(lookup), metaobject_type)
        return lookup

    def resolve(self, metaobject_type: str, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        match = self.load(metaobject_type).get(normalize_handle(value))
        if not match:
            logging.warning("No matching %s metaobject for %r", metaobject_type, value)
        return match

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
