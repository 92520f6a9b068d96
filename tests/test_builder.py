"""Tests for the transaction builder."""

from __future__ import annotations

import pytest

from livesync.exceptions import ValidationError
from livesync.state import ContentDigest, build_link, build_patches, patch_for

ADDRESS = "abc123"


def digest(char: str) -> ContentDigest:
    return ContentDigest("sha3", char * 64)


class TestBuildLink:
    def test_link_value(self) -> None:
        assert build_link(digest("b")) == {"Content-Type": "link", "value": "ref:sha3:" + "b" * 64}


class TestBuildPatches:
    """Tests for build_patches."""

    def test_one_patch_per_file(self) -> None:
        uploads = {"segment1.ts": digest("1"), "index.m3u8": digest("2")}

        patches = build_patches(ADDRESS, uploads, first="index.m3u8")

        assert [p.key for p in patches] == ["index.m3u8", "segment1.ts"]
        assert all(p.path == ("streams", ADDRESS) for p in patches)
        assert patches[1].value == build_link(digest("1"))

    def test_each_patch_links_its_own_digest(self) -> None:
        """Every file is published with the digest of its own content."""
        uploads = {f"segment{i}.ts": digest(str(i)) for i in range(5)}

        patches = build_patches(ADDRESS, uploads)

        for patch in patches:
            assert patch.value["value"] == uploads[patch.key].ref

    def test_ordering_is_deterministic(self) -> None:
        uploads = {"c.ts": digest("c"), "a.ts": digest("a"), "b.ts": digest("b")}
        reordered = dict(reversed(list(uploads.items())))

        first = build_patches(ADDRESS, uploads, first="b.ts")
        second = build_patches(ADDRESS, reordered, first="b.ts")

        assert first == second
        assert [p.key for p in first] == ["b.ts", "a.ts", "c.ts"]

    def test_missing_first_is_ignored(self) -> None:
        patches = build_patches(ADDRESS, {"a.ts": digest("a")}, first="index.m3u8")
        assert [p.key for p in patches] == ["a.ts"]

    def test_empty_uploads(self) -> None:
        assert build_patches(ADDRESS, {}) == []

    def test_custom_root(self) -> None:
        patches = build_patches(ADDRESS, {"a.ts": digest("a")}, root="radio")
        assert patches[0].path == ("radio", ADDRESS)

    def test_invalid_identity_rejected(self) -> None:
        with pytest.raises(ValidationError):
            patch_for("0x.abc", "a.ts", digest("a"))
