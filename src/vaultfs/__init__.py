"""
vaultfs: a read-only FUSE filesystem backed by HashiCorp Vault.
Mounts become top-level directories, key prefixes become subdirectories and
secrets become files holding their value as JSON.
"""

__version__ = "0.1.0"
