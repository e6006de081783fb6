"""Token metadata normalization."""

from __future__ import annotations

IPFS_CID_PREFIXES = ("Qm", "bafy", "bafk")


def normalize_image_url(value: str | None) -> str:
    """Turn a bare IPFS CID into an ``ipfs://`` URL; leave URLs untouched."""
    if not value:
        return ""
    trimmed = value.strip()
    if trimmed.startswith(("http://", "https://", "ipfs://")):
        return trimmed
    if trimmed.startswith(IPFS_CID_PREFIXES):
        return f"ipfs://{trimmed}"
    return trimmed
