"""Tests for identity module."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from eth_utils import keccak

from livesync.exceptions import ConfigurationError
from livesync.identity import (
    ConfigFileIdentityProvider,
    KeySigner,
    PeerIdentity,
    Signer,
    derive_address,
    recover_address,
    transaction_hash,
)
from livesync.state import GENESIS_TX_ID, Patch, Transaction

# Well-known development mnemonic and its first two accounts
DEV_MNEMONIC = "test test test test test test test test test test test junk"
DEV_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEV_ADDRESS = "f39fd6e51aad88f6f4ce6ab8827279cfffb92266"
DEV_ADDRESS_1 = "70997970c51812dc3a010c7d01b50e0d17dc79c8"


class FakeSigner:
    def sign_challenge(self, challenge: bytes) -> str:
        return challenge[::-1].hex()

    def sign_transaction(self, tx: Transaction) -> str:
        return tx.id[::-1]


class TestPeerIdentity:
    """Tests for PeerIdentity dataclass."""

    def test_to_dict_omits_signer(self) -> None:
        identity = PeerIdentity(address="abc", display_name="Encoder", signer=FakeSigner())

        data = identity.to_dict()

        assert data == {"address": "abc", "display_name": "Encoder", "device_id": None}

    def test_signer_protocol(self) -> None:
        assert isinstance(FakeSigner(), Signer)
        assert not isinstance(object(), Signer)


class TestConfigFileIdentityProvider:
    """Tests for ConfigFileIdentityProvider."""

    @pytest.mark.asyncio
    async def test_reads_address(self, temp_dir: Path) -> None:
        config_path = temp_dir / "settings.yaml"
        config_path.write_text(
            yaml.dump({"identity": {"address": "0abc", "display_name": "Studio"}})
        )
        signer = FakeSigner()
        provider = ConfigFileIdentityProvider(config_path, signer=signer)

        identity = await provider.get_current_identity()

        assert identity.address == "0abc"
        assert identity.display_name == "Studio"
        assert identity.signer is signer

    @pytest.mark.asyncio
    async def test_derives_stable_address(self, temp_dir: Path) -> None:
        """Without a configured address the device id decides it, across restarts."""
        config_path = temp_dir / "settings.yaml"

        first = await ConfigFileIdentityProvider(config_path).get_current_identity()
        second = await ConfigFileIdentityProvider(config_path).get_current_identity()

        assert first.address == second.address
        assert first.address == derive_address(first.device_id)
        assert len(first.address) == 40
        assert (temp_dir / ".device_id").read_text() == first.device_id

    @pytest.mark.asyncio
    async def test_identity_is_cached(self, temp_dir: Path) -> None:
        provider = ConfigFileIdentityProvider(temp_dir / "settings.yaml")
        assert await provider.get_current_identity() is await provider.get_current_identity()

    @pytest.mark.asyncio
    async def test_invalid_address(self, temp_dir: Path) -> None:
        config_path = temp_dir / "settings.yaml"
        config_path.write_text(yaml.dump({"identity": {"address": "not.valid"}}))

        with pytest.raises(ConfigurationError):
            await ConfigFileIdentityProvider(config_path).get_current_identity()

    @pytest.mark.asyncio
    async def test_invalid_yaml(self, temp_dir: Path) -> None:
        config_path = temp_dir / "settings.yaml"
        config_path.write_text("identity: [unclosed\n")

        with pytest.raises(ConfigurationError):
            await ConfigFileIdentityProvider(config_path).get_current_identity()

    @pytest.mark.asyncio
    async def test_mnemonic_decides_address(self, temp_dir: Path) -> None:
        config_path = temp_dir / "settings.yaml"
        config_path.write_text(yaml.dump({"identity": {"mnemonic": DEV_MNEMONIC}}))

        identity = await ConfigFileIdentityProvider(config_path).get_current_identity()

        assert identity.address == DEV_ADDRESS
        assert isinstance(identity.signer, KeySigner)

    @pytest.mark.asyncio
    async def test_private_key_with_matching_address(self, temp_dir: Path) -> None:
        config_path = temp_dir / "settings.yaml"
        config_path.write_text(
            yaml.dump({"identity": {"private_key": DEV_KEY, "address": "0x" + DEV_ADDRESS}})
        )

        identity = await ConfigFileIdentityProvider(config_path).get_current_identity()

        assert identity.address == DEV_ADDRESS

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "section",
        [
            {"mnemonic": DEV_MNEMONIC, "address": DEV_ADDRESS_1},
            {"mnemonic": DEV_MNEMONIC, "private_key": DEV_KEY},
            {"mnemonic": DEV_MNEMONIC, "account_index": "one"},
            {"private_key": "not hex"},
        ],
    )
    async def test_invalid_key_material(self, temp_dir: Path, section: dict) -> None:
        config_path = temp_dir / "settings.yaml"
        config_path.write_text(yaml.dump({"identity": section}))

        with pytest.raises(ConfigurationError):
            await ConfigFileIdentityProvider(config_path).get_current_identity()


class TestKeySigner:
    """Tests for secp256k1 key loading and signing."""

    def test_mnemonic_derivation_path(self) -> None:
        assert KeySigner.from_mnemonic(DEV_MNEMONIC).address == DEV_ADDRESS
        assert KeySigner.from_mnemonic(DEV_MNEMONIC, account_index=1).address == DEV_ADDRESS_1

    def test_from_hex(self) -> None:
        signer = KeySigner.from_hex(DEV_KEY)
        assert signer.address == DEV_ADDRESS
        assert len(signer.public_key_hex) == 128

    def test_invalid_mnemonic(self) -> None:
        with pytest.raises(ConfigurationError):
            KeySigner.from_mnemonic("not a real mnemonic phrase at all")

    def test_invalid_hex_key(self) -> None:
        with pytest.raises(ConfigurationError):
            KeySigner.from_hex("abcd")

    def test_challenge_signature_recovers_address(self) -> None:
        signer = KeySigner.generate()
        challenge = bytes(range(32))

        signature = signer.sign_challenge(challenge)

        assert len(bytes.fromhex(signature)) == 65
        assert recover_address(keccak(challenge), signature) == signer.address
        assert recover_address(keccak(b"other"), signature) != signer.address

    def test_transaction_signature_covers_patches(self) -> None:
        signer = KeySigner.from_hex(DEV_KEY)
        patch = Patch(path=("streams", DEV_ADDRESS), key="index.m3u8", value={"value": "a"})
        tx = Transaction.create("p2pair.local/video", {GENESIS_TX_ID}, [patch])
        altered = Transaction.create(
            tx.state_uri, tx.parents, [Patch(path=patch.path, key=patch.key, value={})], tx.id
        )

        signature = signer.sign_transaction(tx)

        assert recover_address(transaction_hash(tx), signature) == DEV_ADDRESS
        assert recover_address(transaction_hash(altered), signature) != DEV_ADDRESS

    def test_recover_rejects_garbage(self) -> None:
        assert recover_address(keccak(b"x"), "00") is None
        assert recover_address(keccak(b"x"), "zz") is None

    def test_satisfies_signer_protocol(self) -> None:
        assert isinstance(KeySigner.generate(), Signer)
