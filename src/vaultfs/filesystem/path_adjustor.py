"""
Translation between logical paths and the physical paths a secret engine uses.

KV version 2 lists keys under ``metadata/`` and reads values under ``data/``,
while version 1 (and anything unversioned) uses the logical path for both.
The filesystem always shows the logical layout.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Protocol


def join_path(*parts: str) -> str:
    """
    Join relative path components with ``/``.

    Empty components are dropped and repeated separators collapse, so
    ``join_path("metadata", "")`` is ``"metadata"``.
    """
    segments = []
    for part in parts:
        segments.extend(s for s in part.split("/") if s)
    return "/".join(segments)


class PathAdjustor(Protocol):
    def list_path(self, path: str) -> str: ...

    def read_path(self, path: str) -> str: ...


@dataclass(frozen=True)
class IdentityPathAdjustor:
    def list_path(self, path: str) -> str:
        return path

    def read_path(self, path: str) -> str:
        return path


@dataclass(frozen=True)
class KVv2PathAdjustor:
    def list_path(self, path: str) -> str:
        return join_path("metadata", path)

    def read_path(self, path: str) -> str:
        return join_path("data", path)


IDENTITY = IdentityPathAdjustor()

# KV engine "version" option -> adjustor
_adjustors: Dict[str, PathAdjustor] = {
    "2": KVv2PathAdjustor(),
}


def register_path_adjustor(version: str, adjustor: PathAdjustor) -> None:
    _adjustors[version] = adjustor


def path_adjustor_for(version: Optional[str]) -> PathAdjustor:
    """Pick the adjustor for a mount's ``version`` option."""
    if version is None:
        return IDENTITY
    return _adjustors.get(version, IDENTITY)
