import errno
import functools
import logging
import os
import stat
import time
from dataclasses import dataclass
from typing import Dict, Tuple, Union

import pyfuse3

from vaultfs.filesystem.errors import PermissionDenied, UpstreamError, VaultFSError
from vaultfs.filesystem.fs_tree import Attributes, DirEntry, DirectoryNode, FileNode, Node, RootNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingEntry:
    """A name handed out by readdir that has not been resolved yet."""
    parent: DirectoryNode
    entry: DirEntry

    def attributes(self) -> Attributes:
        # Size is unknown until the secret is read
        return Attributes(mode=(stat.S_IFDIR | 0o555) if self.entry.is_dir else (stat.S_IFREG | 0o444))


def fuse_errors(func):
    """Report filesystem errors to the kernel as errno values."""
    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        if self.debug_fuse:
            logger.debug(f"{func.__name__}{args}")
        try:
            return await func(self, *args, **kwargs)
        except pyfuse3.FUSEError:
            raise
        except UpstreamError as e:
            logger.warning(f"{func.__name__} failed: {e}")
            raise pyfuse3.FUSEError(e.errno) from e
        except VaultFSError as e:
            logger.debug(f"{func.__name__}: {e}")
            raise pyfuse3.FUSEError(e.errno) from e
        except Exception as e:
            logger.exception(f"{func.__name__} error")
            raise pyfuse3.FUSEError(errno.EIO) from e
    return wrapper


def read_only(func):
    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        raise PermissionDenied(f"{func.__name__}: filesystem is read-only")
    return fuse_errors(wrapper)


class FuseOps(pyfuse3.Operations):
    """
    Serves a RootNode through pyfuse3.

    Every node returned by a lookup gets a fresh inode number, so the kernel
    never confuses a re-read secret with an older one. Entries are dropped
    again when the kernel forgets them.
    """
    root: RootNode
    nodes: Dict[int, Union[Node, PendingEntry]]
    lookups: Dict[int, int]
    handles: Dict[int, FileNode]
    next_inode: int
    next_fh: int

    def __init__(self, root: RootNode, debug_fuse: bool = False, *args):
        super().__init__(*args)
        self.root = root
        self.debug_fuse = debug_fuse
        self.nodes = {pyfuse3.ROOT_INODE: root}
        self.lookups = {}
        self.handles = {}
        self.next_inode = pyfuse3.ROOT_INODE + 1
        self.next_fh = 1
        self.stamp = time.time_ns()

    def _assign(self, node: Union[Node, PendingEntry]) -> int:
        inode = self.next_inode
        self.next_inode += 1
        self.nodes[inode] = node
        self.lookups[inode] = 0
        return inode

    def _drop(self, inode: int) -> None:
        if inode == pyfuse3.ROOT_INODE:
            return
        self.nodes.pop(inode, None)
        self.lookups.pop(inode, None)

    async def _node(self, inode: int) -> Node:
        try:
            node = self.nodes[inode]
        except KeyError:
            raise pyfuse3.FUSEError(errno.ENOENT)
        if isinstance(node, PendingEntry):
            node = await node.parent.resolve(node.entry.display_name)
            # The kernel may have forgotten the inode while we waited
            if inode in self.nodes:
                self.nodes[inode] = node
        return node

    async def _directory(self, inode: int) -> DirectoryNode:
        node = await self._node(inode)
        if isinstance(node, FileNode):
            raise pyfuse3.FUSEError(errno.ENOTDIR)
        return node

    def _entry_attributes(self, inode: int, attributes: Attributes) -> pyfuse3.EntryAttributes:
        attr = pyfuse3.EntryAttributes()
        attr.st_ino = inode
        attr.st_mode = attributes.mode
        attr.st_nlink = 2 if attributes.is_dir else 1
        attr.st_size = attributes.size
        attr.st_atime_ns = self.stamp
        attr.st_ctime_ns = self.stamp
        attr.st_mtime_ns = self.stamp
        attr.st_gid = os.getgid()
        attr.st_uid = os.getuid()
        # Always ask again: every access reflects the current store contents
        attr.entry_timeout = 0
        attr.attr_timeout = 0
        return attr

    @fuse_errors
    async def getattr(self, inode: int, ctx: pyfuse3.RequestContext = None) -> pyfuse3.EntryAttributes:
        node = await self._node(inode)
        return self._entry_attributes(inode, node.attributes())

    @fuse_errors
    async def lookup(self, parent_inode: int, name: bytes, ctx: pyfuse3.RequestContext = None) -> pyfuse3.EntryAttributes:
        parent = await self._directory(parent_inode)
        child = await parent.resolve(os.fsdecode(name))
        inode = self._assign(child)
        self.lookups[inode] += 1
        return self._entry_attributes(inode, child.attributes())

    async def forget(self, inode_list: Tuple[Tuple[int, int], ...]) -> None:
        for inode, nlookup in inode_list:
            if inode not in self.lookups:
                continue
            self.lookups[inode] -= nlookup
            if self.lookups[inode] <= 0:
                self._drop(inode)

    @fuse_errors
    async def opendir(self, inode: int, ctx: pyfuse3.RequestContext) -> int:
        """Open the directory with inode."""
        await self._directory(inode)
        return inode

    @fuse_errors
    async def readdir(self, fh: int, start_id: int, token: pyfuse3.ReaddirToken) -> None:
        """Read entries in open directory fh."""
        directory = await self._directory(fh)
        entries = await directory.enumerate()
        for i in range(start_id, len(entries)):
            pending = PendingEntry(parent=directory, entry=entries[i])
            inode = self._assign(pending)
            attr = self._entry_attributes(inode, pending.attributes())
            if not pyfuse3.readdir_reply(token, os.fsencode(entries[i].display_name), attr, i + 1):
                self._drop(inode)
                return
            self.lookups[inode] += 1

    async def releasedir(self, fh: int) -> None:
        pass

    @fuse_errors
    async def open(self, inode: int, flags: int, ctx: pyfuse3.RequestContext) -> pyfuse3.FileInfo:
        node = await self._node(inode)
        if not isinstance(node, FileNode):
            raise pyfuse3.FUSEError(errno.EISDIR)
        keep_cache = node.open(flags)
        fh = self.next_fh
        self.next_fh += 1
        self.handles[fh] = node
        return pyfuse3.FileInfo(fh=fh, keep_cache=keep_cache)

    @fuse_errors
    async def read(self, fh: int, off: int, size: int) -> bytes:
        """Read size bytes from fh at position off."""
        node = self.handles.get(fh)
        if node is None:
            raise pyfuse3.FUSEError(errno.EBADF)
        return node.read(off, size)

    async def release(self, fh: int) -> None:
        self.handles.pop(fh, None)

    async def statfs(self, ctx: pyfuse3.RequestContext) -> pyfuse3.StatvfsData:
        stats = pyfuse3.StatvfsData()
        stats.f_bsize = 4096
        stats.f_frsize = 4096
        stats.f_namemax = 255
        return stats

    # Nothing below ever reaches the store.

    @read_only
    async def setattr(self, inode, attr, fields, fh, ctx):
        pass

    @read_only
    async def mknod(self, parent_inode, name, mode, rdev, ctx):
        pass

    @read_only
    async def mkdir(self, parent_inode, name, mode, ctx):
        pass

    @read_only
    async def unlink(self, parent_inode, name, ctx):
        pass

    @read_only
    async def rmdir(self, parent_inode, name, ctx):
        pass

    @read_only
    async def symlink(self, parent_inode, name, target, ctx):
        pass

    @read_only
    async def rename(self, parent_inode_old, name_old, parent_inode_new, name_new, flags, ctx):
        pass

    @read_only
    async def link(self, inode, new_parent_inode, new_name, ctx):
        pass

    @read_only
    async def write(self, fh, off, buf):
        pass

    @read_only
    async def create(self, parent_inode, name, mode, flags, ctx):
        pass

    @read_only
    async def setxattr(self, inode, name, value, ctx):
        pass

    @read_only
    async def removexattr(self, inode, name, ctx):
        pass
