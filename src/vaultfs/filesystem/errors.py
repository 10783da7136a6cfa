"""
Errors raised by the Vault filesystem tree.
Each error carries the errno the FUSE layer reports for it.
"""
import errno


class VaultFSError(Exception):
    """Base class for request-scoped filesystem errors."""
    errno: int = errno.EIO


class UpstreamError(VaultFSError):
    """A call to the remote store failed (network, auth, malformed response)."""
    errno = errno.EIO


class NotFound(VaultFSError):
    errno = errno.ENOENT


class PermissionDenied(VaultFSError):
    errno = errno.EACCES


class EncodingFailure(VaultFSError):
    """A secret value could not be rendered as file content."""
    errno = errno.EIO
