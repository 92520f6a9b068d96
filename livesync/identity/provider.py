"""
Identity provider abstract interface.
"""

from abc import ABC, abstractmethod

from .types import PeerIdentity


class IdentityProvider(ABC):
    """Abstract identity provider.

    Implementations resolve the publisher address and the persistent
    device id used when no address is configured.
    """

    @abstractmethod
    async def get_current_identity(self) -> PeerIdentity:
        """Get the identity this process publishes under.

        Raises:
            ConfigurationError: If the configured identity is invalid
        """
        ...

    @abstractmethod
    async def get_device_id(self) -> str:
        """Get the unique device identifier.

        The device ID is persistent across runs.
        """
        ...
