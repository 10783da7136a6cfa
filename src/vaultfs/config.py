"""
Configuration for the Vault filesystem.

Values come from defaults, then the VAULT_* environment variables, then an
optional JSON config file, then command line flags.
"""
import argparse
import os
from typing import List, Mapping, Optional

from serde import SerdeError, from_dict, serde, to_dict
from serde.json import from_json

DEFAULT_VAULT_ADDR = "https://127.0.0.1:8200"


class ConfigError(Exception):
    """The config file is missing, malformed or holds a value of the wrong type."""


@serde
class Config:
    mountpoint: str = ""
    vault_addr: str = DEFAULT_VAULT_ADDR
    vault_token: Optional[str] = None
    vault_namespace: Optional[str] = None
    timeout: int = 30
    verify_tls: bool = True
    debug: bool = False
    debug_fuse: bool = False
    allow_other: bool = False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vaultfs",
        description="Mount a Vault server as a read-only filesystem.",
    )
    parser.add_argument("mountpoint", nargs="?", help="directory to mount the filesystem at")
    parser.add_argument("--config", help="JSON config file")
    parser.add_argument("--debug", action="store_true", help="enable debugging")
    parser.add_argument("--debugfuse", action="store_true", help="enable FUSE debugging")
    parser.add_argument("--allow-other", action="store_true", help="let other users access the mount")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def read_config_file(path: str) -> dict:
    try:
        with open(path, "r") as f:
            values = from_json(dict, f.read())
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except (SerdeError, ValueError) as e:
        raise ConfigError(f"Cannot parse config file {path}: {e}") from e
    if not isinstance(values, dict):
        raise ConfigError(f"Config file {path} must hold a JSON object")
    return values


def load_config(args: argparse.Namespace, environ: Mapping[str, str] = os.environ) -> Config:
    """
    Merge all configuration sources.

    Raises:
        ConfigError: the config file cannot be read or parsed
        SystemExit: no mountpoint was given anywhere
    """
    values = to_dict(Config(
        vault_addr=environ.get("VAULT_ADDR", DEFAULT_VAULT_ADDR),
        vault_token=environ.get("VAULT_TOKEN"),
        vault_namespace=environ.get("VAULT_NAMESPACE"),
    ))
    if args.config:
        values.update(read_config_file(args.config))
    if args.mountpoint:
        values["mountpoint"] = args.mountpoint
    if args.debug:
        values["debug"] = True
    if args.debugfuse:
        values["debug_fuse"] = True
    if args.allow_other:
        values["allow_other"] = True

    try:
        config = from_dict(Config, values)
    except SerdeError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
    if not config.mountpoint:
        build_parser().error("a mountpoint is required")
    return config
