"""
Transaction builder.

Turns a filename -> digest mapping into the ordered list of patches
that publishes those files under ``streams.<identity>``. The output
depends only on the input, so re-submitting after a failure yields the
same patches.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .types import ContentDigest, Patch

DEFAULT_ROOT = "streams"


def build_link(digest: ContentDigest) -> dict[str, Any]:
    """Typed link value pointing at a blob."""
    return {"Content-Type": "link", "value": digest.ref}


def patch_for(
    identity: str,
    filename: str,
    digest: ContentDigest,
    root: str = DEFAULT_ROOT,
) -> Patch:
    """Build the patch publishing a single file.

    Raises:
        ValidationError: If the identity or filename cannot form a valid path
    """
    return Patch(path=(root, identity), key=filename, value=build_link(digest))


def build_patches(
    identity: str,
    uploads: Mapping[str, ContentDigest],
    *,
    root: str = DEFAULT_ROOT,
    first: str | None = None,
) -> list[Patch]:
    """Build one patch per uploaded file.

    Args:
        identity: Publisher address; becomes the second path segment
        uploads: Mapping of filename to blob digest
        root: Top-level key of the state tree
        first: Filename whose patch leads the list (the live index)

    Returns:
        Patches ordered with ``first`` leading and the rest sorted by filename
    """
    ordered = sorted(uploads)
    if first is not None and first in uploads:
        ordered.remove(first)
        ordered.insert(0, first)
    return [patch_for(identity, name, uploads[name], root=root) for name in ordered]
