"""Tests for state tree types."""

from __future__ import annotations

import pytest

from livesync.exceptions import ValidationError
from livesync.state import (
    GENESIS_TX_ID,
    ContentDigest,
    Patch,
    Transaction,
    random_tx_id,
    validate_tx_id,
)

SHA3 = "a" * 64


class TestTransactionIds:
    """Tests for transaction id helpers."""

    def test_genesis_is_padded_name(self) -> None:
        """Genesis id is 'genesis' zero-padded to 32 bytes."""
        assert len(GENESIS_TX_ID) == 64
        assert bytes.fromhex(GENESIS_TX_ID).rstrip(b"\x00") == b"genesis"

    def test_random_ids_are_unique(self) -> None:
        ids = {random_tx_id() for _ in range(100)}
        assert len(ids) == 100
        for tx_id in ids:
            assert validate_tx_id(tx_id) == tx_id

    @pytest.mark.parametrize("bad", ["", "abc", "G" * 64, "A" * 64, "a" * 63])
    def test_validate_rejects_malformed(self, bad: str) -> None:
        with pytest.raises(ValidationError):
            validate_tx_id(bad)


class TestContentDigest:
    """Tests for ContentDigest."""

    def test_ref(self) -> None:
        digest = ContentDigest("sha3", SHA3)
        assert digest.ref == f"ref:sha3:{SHA3}"
        assert str(digest) == digest.ref

    def test_from_ref(self) -> None:
        """Parsing a ref restores an equal digest."""
        digest = ContentDigest.from_ref(f"ref:sha3:{SHA3.upper()}")
        assert digest == ContentDigest("sha3", SHA3)

    def test_rejects_wrong_length(self) -> None:
        with pytest.raises(ValidationError):
            ContentDigest("sha3", "a" * 40)

    def test_rejects_unknown_algorithm(self) -> None:
        with pytest.raises(ValidationError):
            ContentDigest("md5", "a" * 32)

    def test_rejects_malformed_ref(self) -> None:
        with pytest.raises(ValidationError):
            ContentDigest.from_ref(f"sha3:{SHA3}")


class TestPatch:
    """Tests for Patch validation and serialization."""

    def test_serialize(self) -> None:
        patch = Patch(
            path=("streams", "abc123"),
            key="index.m3u8",
            value={"Content-Type": "link", "value": f"ref:sha3:{SHA3}"},
        )

        assert patch.serialize() == (
            f'.streams.abc123["index.m3u8"] = '
            f'{{"Content-Type":"link","value":"ref:sha3:{SHA3}"}}'
        )

    def test_parse_serialized(self) -> None:
        patch = Patch(path=("streams", "abc"), key="segment 1.ts", value={"n": [1, 2]})
        assert Patch.parse(patch.serialize()) == patch

    def test_keypath(self) -> None:
        patch = Patch(path=("streams", "abc"), key="a.ts", value=1)
        assert patch.keypath == ("streams", "abc", "a.ts")

    def test_patches_are_hashable(self) -> None:
        a = Patch(path=("streams", "abc"), key="a.ts", value={"x": 1})
        b = Patch(path=("streams", "abc"), key="a.ts", value={"x": 1})
        assert len({a, b}) == 1

    @pytest.mark.parametrize(
        "path,key",
        [
            ((), "a.ts"),
            (("streams", "bad.segment"), "a.ts"),
            (("streams", ""), "a.ts"),
            (("streams", "abc"), ""),
            (("streams", "abc"), "line\nbreak"),
        ],
    )
    def test_rejects_malformed(self, path: tuple[str, ...], key: str) -> None:
        with pytest.raises(ValidationError):
            Patch(path=path, key=key, value=1)

    def test_rejects_unserializable_value(self) -> None:
        with pytest.raises(ValidationError):
            Patch(path=("streams",), key="a", value=object())

    def test_parse_rejects_garbage(self) -> None:
        with pytest.raises(ValidationError):
            Patch.parse("streams.abc = 1")


class TestTransaction:
    """Tests for Transaction."""

    def test_create_assigns_fresh_id(self) -> None:
        patches = [Patch(path=("streams", "abc"), key="a.ts", value=1)]
        tx1 = Transaction.create("uri", {GENESIS_TX_ID}, patches)
        tx2 = Transaction.create("uri", {GENESIS_TX_ID}, patches)

        assert tx1.id != tx2.id
        assert tx1.parents == frozenset({GENESIS_TX_ID})
        assert tx1.patches == tuple(patches)

    def test_create_requires_parents(self) -> None:
        with pytest.raises(ValidationError):
            Transaction.create("uri", set(), [])

    def test_create_validates_parents(self) -> None:
        with pytest.raises(ValidationError):
            Transaction.create("uri", {"not-a-tx-id"}, [])

    def test_dict_roundtrip(self) -> None:
        """Test serialization roundtrip."""
        parents = {random_tx_id(), random_tx_id()}
        tx = Transaction.create(
            "uri", parents, [Patch(path=("streams", "abc"), key="a.ts", value={"v": 1})]
        )

        data = tx.to_dict()
        restored = Transaction.from_dict(data)

        assert data["parents"] == sorted(parents)
        assert restored == tx
