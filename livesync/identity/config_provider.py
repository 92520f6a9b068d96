"""
Config file identity provider.

Reads the publisher identity from the local YAML settings file.
"""

import hashlib
import logging
import re
import socket
import uuid
from pathlib import Path
from typing import Any

import yaml

from ..exceptions import ConfigurationError
from .keys import KeySigner
from .provider import IdentityProvider
from .types import PeerIdentity, Signer

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class ConfigFileIdentityProvider(IdentityProvider):
    """Identity provider that reads from local config.

    Configuration in ~/.livesync/settings.yaml:

    ```yaml
    identity:
      mnemonic: "twelve or twenty-four BIP-39 words ..."
      account_index: 0
      display_name: "Studio encoder"
    ```

    ``private_key`` (hex) may be given instead of ``mnemonic``. With key
    material the address is the key's address; a configured ``address``
    must then match it. Without key material the identity is unsigned and
    the address is either configured or derived from the persistent
    device ID, so the stream key is stable across restarts.
    """

    def __init__(self, config_path: Path | None = None, signer: Signer | None = None):
        """Initialize the config file provider.

        Args:
            config_path: Path to settings.yaml. Defaults to ~/.livesync/settings.yaml
            signer: Optional signer attached to the resolved identity
        """
        self.config_path = config_path or Path.home() / ".livesync" / "settings.yaml"
        self.signer = signer
        self._identity: PeerIdentity | None = None
        self._device_id: str | None = None

    async def get_current_identity(self) -> PeerIdentity:
        if self._identity is not None:
            return self._identity

        identity_config = self._load_config().get("identity") or {}
        device_id = await self.get_device_id()
        signer = self.signer or self._load_signer(identity_config)

        configured = identity_config.get("address")
        if isinstance(signer, KeySigner):
            address = signer.address
            if configured and str(configured).lower().removeprefix("0x") != address:
                raise ConfigurationError(
                    "identity.address", f"{configured!r} does not match the key address {address}"
                )
        else:
            address = str(configured or derive_address(device_id))
        if not _ADDRESS_RE.match(address):
            raise ConfigurationError("identity.address", f"invalid address {address!r}")

        self._identity = PeerIdentity(
            address=address,
            display_name=identity_config.get("display_name", self._get_hostname()),
            device_id=device_id,
            signer=signer,
        )
        logger.info(f"Resolved identity {address} ({'signed' if signer else 'unsigned'})")
        return self._identity

    def _load_signer(self, identity_config: dict[str, Any]) -> KeySigner | None:
        mnemonic = identity_config.get("mnemonic")
        private_key = identity_config.get("private_key")
        if mnemonic and private_key:
            raise ConfigurationError("identity", "set either mnemonic or private_key, not both")
        if mnemonic:
            index = identity_config.get("account_index", 0)
            if not isinstance(index, int):
                raise ConfigurationError("identity.account_index", "must be an integer")
            return KeySigner.from_mnemonic(str(mnemonic), index)
        if private_key:
            return KeySigner.from_hex(str(private_key))
        return None

    async def get_device_id(self) -> str:
        """Get or create persistent device ID.

        The device ID is stored next to the settings file in ``.device_id``.
        """
        if self._device_id is not None:
            return self._device_id

        device_file = self.config_path.parent / ".device_id"

        if device_file.exists():
            self._device_id = device_file.read_text().strip()
            return self._device_id

        self._device_id = str(uuid.uuid4())

        device_file.parent.mkdir(parents=True, exist_ok=True)
        device_file.write_text(self._device_id)

        return self._device_id

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            return {}

        try:
            return yaml.safe_load(self.config_path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(str(self.config_path), f"invalid YAML: {e}") from e

    def _get_hostname(self) -> str:
        try:
            return socket.gethostname()
        except OSError:
            return "unknown-device"


def derive_address(device_id: str) -> str:
    """Derive a 20-byte hex address from a device id."""
    return hashlib.sha3_256(device_id.encode("utf-8")).hexdigest()[:40]
