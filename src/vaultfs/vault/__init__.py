"""
Remote secret store access.
This module wraps the Vault API behind the small capability set the filesystem needs.
"""

from .store import RemoteStore, VaultStore

__all__ = ['RemoteStore', 'VaultStore']
