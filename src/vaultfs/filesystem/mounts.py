"""
Secret-engine mounts and the registry of node constructors per engine type.
"""
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

KV_ENGINE = "kv"


@dataclass(frozen=True)
class Mount:
    """A secret engine mounted at ``name`` (no trailing separator)."""
    name: str
    engine_type: str
    options: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_response(cls, mountpoint: str, entry: Mapping[str, Any]) -> "Mount":
        # Vault reports options as null for engines that take none
        options = entry.get("options") or {}
        return cls(
            name=mountpoint.rstrip("/"),
            engine_type=str(entry.get("type", "")),
            options=MappingProxyType({str(k): str(v) for k, v in options.items()}),
        )

    @property
    def version(self) -> Optional[str]:
        return self.options.get("version")

    @property
    def is_versioned_kv(self) -> bool:
        return self.engine_type == KV_ENGINE and self.version == "2"


# A node maker receives the remote store and the mount and returns the
# node for the mount's root directory.
NodeMaker = Callable[[Any, Mount], Any]

node_makers: Dict[str, NodeMaker] = {}


def register_node_maker(engine_type: str, maker: NodeMaker) -> None:
    if engine_type in node_makers:
        logger.debug(f"Replacing node maker for engine type {engine_type!r}")
    node_makers[engine_type] = maker


def node_maker_for(engine_type: str) -> Optional[NodeMaker]:
    return node_makers.get(engine_type)
