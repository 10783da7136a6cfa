"""
Read-only filesystem view of a Vault server.
This module provides the node tree and path resolution; the FUSE adapter lives in
``vaultfs.filesystem.fuse_binding``.
"""

from .errors import EncodingFailure, NotFound, PermissionDenied, UpstreamError, VaultFSError
from .fs_tree import Dir, DirEntry, FileNode, MountDir, RootNode
from .mounts import Mount, register_node_maker
from .path_adjustor import IdentityPathAdjustor, KVv2PathAdjustor, register_path_adjustor

__all__ = [
    'RootNode', 'MountDir', 'Dir', 'FileNode', 'DirEntry', 'Mount',
    'IdentityPathAdjustor', 'KVv2PathAdjustor', 'register_node_maker', 'register_path_adjustor',
    'VaultFSError', 'UpstreamError', 'NotFound', 'PermissionDenied', 'EncodingFailure',
]
