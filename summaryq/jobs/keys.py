"""
Deterministic fingerprints for summary jobs.

A request key identifies one (target, content, prompt, force) combination and
is what makes enqueue idempotent. A metadata hash fingerprints the content
that would be summarized, so edits to the content produce a new request key.
"""

import hashlib
import json
from collections.abc import Mapping
from typing import Any

DEFAULT_PROVIDER = "glm"


def _sha256(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def build_request_key(
    target_id: str, metadata_hash: str, prompt_version: str, force: bool
) -> str:
    """Build the idempotency key for a summary request."""
    raw = "|".join(
        [
            str(target_id or "").strip(),
            str(metadata_hash or ""),
            str(prompt_version or ""),
            "force" if force else "normal",
        ]
    )
    return _sha256(raw)


def build_metadata_hash(fields: Mapping[str, Any]) -> str:
    """Hash an ordered mapping of content fields."""
    encoded = json.dumps(
        {key: "" if value is None else str(value) for key, value in fields.items()},
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return _sha256(encoded)


def build_github_metadata_hash(metadata: Mapping[str, Any]) -> str:
    return build_metadata_hash(
        {
            "repoId": metadata.get("repoId") or "",
            "description": metadata.get("description") or "",
            "readme": metadata.get("readme") or "",
        }
    )


def build_bookmark_metadata_hash(metadata: Mapping[str, Any]) -> str:
    bookmark_id = metadata.get("bookmarkId") or metadata.get("normalizedUrl") or ""
    normalized_url = metadata.get("normalizedUrl") or metadata.get("bookmarkId") or ""
    return build_metadata_hash(
        {
            "bookmarkId": bookmark_id,
            "title": metadata.get("title") or "",
            "excerpt": metadata.get("excerpt") or "",
            "domain": metadata.get("domain") or "",
            "normalizedUrl": normalized_url,
        }
    )


def normalize_provider(value: Any) -> str:
    """Lower-case provider name; empty values fall back to the default."""
    if isinstance(value, str) and value.strip():
        return value.strip().lower()
    return DEFAULT_PROVIDER
