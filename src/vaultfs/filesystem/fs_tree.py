"""
Implementation of the filesystem tree on top of a list-only secret store.

Vault can only list the names under a path and read the value at a path.
Directories are therefore derived from listings (names ending in ``/``) and
every lookup lists the parent to decide whether a name is a file or a
directory before reading it. Nothing is cached: each request goes back to
the store.
"""
import json
import logging
import os
import stat
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, List, Mapping, Union

from .errors import EncodingFailure, NotFound, PermissionDenied
from .mounts import KV_ENGINE, Mount, node_maker_for, register_node_maker
from .path_adjustor import PathAdjustor, join_path, path_adjustor_for

if TYPE_CHECKING:
    from vaultfs.vault.store import RemoteStore

logger = logging.getLogger(__name__)

SEPARATOR = "/"


@dataclass(frozen=True)
class Attributes:
    mode: int
    size: int = 0

    @property
    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)


DIR_ATTRIBUTES = Attributes(mode=stat.S_IFDIR | 0o555)


@dataclass(frozen=True)
class DirEntry:
    """
    A name returned by a directory listing.
    Directory names keep the trailing separator the store reports.
    """
    name: str
    is_dir: bool

    @property
    def display_name(self) -> str:
        return self.name.rstrip(SEPARATOR)


@dataclass(frozen=True)
class FileNode:
    """A leaf secret. Content is fixed when the node is created."""
    content: bytes = b""

    def attributes(self) -> Attributes:
        return Attributes(mode=stat.S_IFREG | 0o444, size=len(self.content))

    def open(self, flags: int) -> bool:
        """
        Check that an open request is read-only.

        Returns:
            True: the content never changes, so the caller may keep it cached
        """
        if flags & os.O_ACCMODE != os.O_RDONLY:
            raise PermissionDenied("secrets are read-only")
        return True

    def read(self, offset: int, length: int) -> bytes:
        offset = max(offset, 0)
        return self.content[offset:offset + length]


def render(payload: Any) -> bytes:
    """Encode a secret value as compact JSON with sorted keys."""
    try:
        text = json.dumps(payload, sort_keys=True, separators=(",", ":"),
                          ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise EncodingFailure(f"cannot encode secret: {e}") from e
    return text.encode("utf-8")


@dataclass(frozen=True)
class MountDir:
    """Root directory of a KV mount. Also the shared context of its subdirectories."""
    store: "RemoteStore"
    mount: Mount
    adjustor: PathAdjustor

    def attributes(self) -> Attributes:
        return DIR_ATTRIBUTES

    async def enumerate(self) -> List[DirEntry]:
        return await self.list_entries("")

    async def resolve(self, name: str) -> "Node":
        return await self.lookup("", name)

    async def list_entries(self, relpath: str) -> List[DirEntry]:
        """List the logical directory at relpath inside this mount."""
        names = await self.store.list(join_path(self.mount.name, self.adjustor.list_path(relpath)))
        if not names:
            return []
        return [DirEntry(name=n, is_dir=n.endswith(SEPARATOR)) for n in names]

    async def lookup(self, relpath: str, name: str) -> "Node":
        """
        Resolve name inside the logical directory relpath.

        The store cannot stat a single path, so the parent is listed to tell a
        directory ("name/") from a leaf ("name"). If both are listed the
        directory wins.
        """
        siblings = {entry.name for entry in await self.list_entries(relpath)}
        childpath = join_path(relpath, name)
        if name + SEPARATOR in siblings:
            return Dir(mount_dir=self, path=childpath)
        if name not in siblings:
            raise NotFound(f"{join_path(self.mount.name, childpath)} not found")
        return await self.read_file(childpath)

    async def read_file(self, childpath: str) -> FileNode:
        path = join_path(self.mount.name, self.adjustor.read_path(childpath))
        secret = await self.store.read(path)
        if secret is None:
            # Deleted between the listing and the read
            raise NotFound(f"{path} not found")
        data = secret.get("data")
        if self.mount.is_versioned_kv:
            data = data.get("data") if isinstance(data, Mapping) else None
            if not isinstance(data, Mapping):
                raise EncodingFailure(f"{path}: versioned secret has no data object")
        return FileNode(render(data))


@dataclass(frozen=True)
class Dir:
    """A directory below a mount root."""
    mount_dir: MountDir
    path: str

    def attributes(self) -> Attributes:
        return DIR_ATTRIBUTES

    async def enumerate(self) -> List[DirEntry]:
        return await self.mount_dir.list_entries(self.path)

    async def resolve(self, name: str) -> "Node":
        return await self.mount_dir.lookup(self.path, name)


def make_kv_node(store: "RemoteStore", mount: Mount) -> MountDir:
    return MountDir(store=store, mount=mount, adjustor=path_adjustor_for(mount.version))


register_node_maker(KV_ENGINE, make_kv_node)


@dataclass(frozen=True)
class RootNode:
    """
    The filesystem root: one directory per secret engine mount.
    The mount table is read once, when the root is created.
    """
    store: "RemoteStore"
    # mountpoint (with trailing separator) -> mount
    mounts: Mapping[str, Mount]

    @classmethod
    async def create(cls, store: "RemoteStore") -> "RootNode":
        response = await store.list_mounts()
        mounts = {mountpt: Mount.from_response(mountpt, entry) for mountpt, entry in response.items()}
        logger.info(f"Found {len(mounts)} mounts: {', '.join(sorted(mounts))}")
        return cls(store=store, mounts=MappingProxyType(mounts))

    def attributes(self) -> Attributes:
        return DIR_ATTRIBUTES

    async def enumerate(self) -> List[DirEntry]:
        return [DirEntry(name=mountpt.rstrip(SEPARATOR), is_dir=True) for mountpt in self.mounts]

    async def resolve(self, name: str) -> "Node":
        mount = self.mounts.get(name + SEPARATOR)
        if mount is None:
            raise NotFound(f"no such mount: {name!r}")
        maker = node_maker_for(mount.engine_type)
        if maker is None:
            logger.debug(f"Mount {name!r} has unsupported engine type {mount.engine_type!r}")
            return FileNode(b"")
        return maker(self.store, mount)


DirectoryNode = Union[RootNode, MountDir, Dir]
Node = Union[RootNode, MountDir, Dir, FileNode]
