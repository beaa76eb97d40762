# src/cache/keys.py - v1
"""Deterministic cache keys derived from a resource's stable identity.

Key formats:
  file:{name}:{size}[:{last_modified}]   file-backed resources
  url:{sha256(url)[:16]}                 URL-backed resources
  bytes:{sha256(data)[:16]}              in-memory payloads
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from galleryai.resources.models import ImageResource

_DIGEST_LEN = 16


class ResourceIdentityError(ValueError):
    """The resource carries nothing a stable cache key can be built from."""


def compute_cache_key(resource: ImageResource) -> str:
    """Build the cache key for a resource.

    Raises:
        ResourceIdentityError: If the resource has no name+size, URL or data.
    """
    if resource.name and resource.size is not None:
        key = f"file:{resource.name}:{resource.size}"
        if resource.last_modified is not None:
            key = f"{key}:{resource.last_modified}"
        return key

    if resource.url:
        return f"url:{content_digest(resource.url.encode('utf-8'))}"

    if resource.data:
        return f"bytes:{content_digest(resource.data)}"

    raise ResourceIdentityError(
        "resource needs a name and size, a url, or raw data to be cached"
    )


def content_digest(payload: bytes) -> str:
    """Short SHA-256 hex digest of a payload."""
    return hashlib.sha256(payload).hexdigest()[:_DIGEST_LEN]
