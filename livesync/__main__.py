"""
Run a directory publisher.

Usage:
    python -m livesync --config settings.yaml
    python -m livesync --config settings.yaml --log-level DEBUG --json-logs

Without --config, settings are taken from LIVESYNC_* environment
variables (see livesync.config).
"""

import argparse
import asyncio
import logging
import signal
from pathlib import Path

from .blobs import PeerBlobStore
from .config import SyncConfig
from .exceptions import AuthenticationError, ConfigurationError
from .identity import ConfigFileIdentityProvider
from .local import ensure_directory
from .logging_utils import configure_structured_logging, get_sync_logger
from .peer import HttpPeerClient
from .state import SyncSession
from .sync import CausalCommitClient, ChangeBatcher, DirectoryWatcher

logger = get_sync_logger("cli")


async def run(config: SyncConfig, settings_path: Path | None = None) -> None:
    """Publish ``config.watch_dir`` until interrupted.

    Args:
        config: Sync configuration
        settings_path: Settings file holding the ``identity:`` section
    """
    identity = await ConfigFileIdentityProvider(settings_path).get_current_identity()
    if identity.signer is None:
        logger.warning("No identity key configured, transactions will be unsigned")
    logger.info(f"Publishing {config.watch_dir} to {config.state_uri} as {identity.address}")

    await ensure_directory(config.watch_dir)
    session = await SyncSession.load(config.state_uri, config.effective_state_dir)
    logger.info(
        f"Loaded session: frontier={sorted(session.frontier)}, "
        f"{sum(session.uploaded.values())} finalized files"
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            pass

    async with HttpPeerClient(config.peer_url, identity, timeout=config.request_timeout) as peer:
        await peer.authorize()

        committer = CausalCommitClient(peer, session, timeout=config.request_timeout)
        batcher = ChangeBatcher(
            config,
            identity,
            session,
            PeerBlobStore(peer, timeout=config.request_timeout),
            committer,
        )
        watcher = DirectoryWatcher(
            config.watch_dir,
            batcher.notify,
            poll_interval=config.poll_interval,
            is_ignored=config.is_ignored,
        )

        await batcher.start(initial_cycle=True)
        await watcher.start()
        try:
            await stop_event.wait()
        finally:
            logger.info("Shutting down")
            await watcher.stop()
            await batcher.stop()
            await session.save()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="livesync",
        description="Publish a directory of live segments into a replicated state tree",
    )
    parser.add_argument(
        "--config", type=Path, help="YAML settings file with 'sync' and 'identity' sections"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit single-line JSON log records"
    )
    args = parser.parse_args(argv)

    configure_structured_logging(level=getattr(logging, args.log_level), json_output=args.json_logs)

    try:
        config = SyncConfig.from_yaml(args.config) if args.config else SyncConfig.from_environment()
        asyncio.run(run(config, args.config))
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    except AuthenticationError as e:
        logger.error(f"Peer refused this identity: {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
