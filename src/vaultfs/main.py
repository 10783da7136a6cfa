"""
Main entry point for the Vault filesystem.
"""
import asyncio
import logging
import signal
import sys
from typing import List, Optional

import hvac
import pyfuse3
import pyfuse3.asyncio

from vaultfs.config import Config, ConfigError, load_config, parse_args
from vaultfs.filesystem.errors import VaultFSError
from vaultfs.filesystem.fs_tree import RootNode
from vaultfs.filesystem.fuse_binding import FuseOps
from vaultfs.vault.store import VaultStore

logger = logging.getLogger(__name__)


def setup_logging(config: Config) -> logging.Logger:
    """
    Configure logging and return the logger handed to the Vault store.
    """
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    store_logger = logging.getLogger("vaultfs.vault.calls")
    store_logger.setLevel(logging.DEBUG if config.debug else logging.WARNING)
    fuse_level = logging.DEBUG if config.debug_fuse else logging.INFO
    logging.getLogger("pyfuse3").setLevel(fuse_level)
    logging.getLogger("vaultfs.filesystem.fuse_binding").setLevel(fuse_level)
    return store_logger


def make_client(config: Config) -> hvac.Client:
    return hvac.Client(
        url=config.vault_addr,
        token=config.vault_token,
        namespace=config.vault_namespace,
        verify=config.verify_tls,
        timeout=config.timeout,
    )


def fuse_options(config: Config) -> set:
    options = set(pyfuse3.default_options)
    options.add("fsname=vaultfs")
    options.add("subtype=vaultfs")
    if config.allow_other:
        options.add("allow_other")
    return options


async def run(config: Config, store_logger: Optional[logging.Logger] = None) -> None:
    store = VaultStore(make_client(config), logger=store_logger)
    root = await RootNode.create(store)
    ops = FuseOps(root, debug_fuse=config.debug_fuse)

    pyfuse3.init(ops, config.mountpoint, fuse_options(config))
    logger.info(f"Mounted Vault {config.vault_addr} at {config.mountpoint}")

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, pyfuse3.terminate)
    try:
        await pyfuse3.main()
    finally:
        pyfuse3.close(unmount=True)
        logger.info(f"Unmounted {config.mountpoint}")


def main(argv: Optional[List[str]] = None) -> int:
    try:
        config = load_config(parse_args(argv))
    except ConfigError as e:
        logging.basicConfig(format="%(asctime)s %(name)s %(levelname)s %(message)s")
        logger.error(str(e))
        return 1
    store_logger = setup_logging(config)
    pyfuse3.asyncio.enable()
    try:
        asyncio.run(run(config, store_logger))
    except VaultFSError as e:
        logger.error(f"Cannot read Vault mounts: {e}")
        return 1
    except (RuntimeError, OSError) as e:
        logger.error(f"Cannot mount {config.mountpoint}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
