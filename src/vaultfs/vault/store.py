"""
Access to the remote secret store.

``VaultStore`` wraps a synchronous ``hvac.Client``. Each call runs on a worker
thread so the FUSE event loop keeps serving other requests while Vault answers.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

import hvac
import requests

from vaultfs.filesystem.errors import UpstreamError

logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    async def list_mounts(self) -> Dict[str, Dict[str, Any]]: ...

    async def list(self, path: str) -> Optional[List[str]]: ...

    async def read(self, path: str) -> Optional[Dict[str, Any]]: ...

    async def write(self, path: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...


class VaultStore:
    """
    RemoteStore backed by HashiCorp Vault.

    Args:
        client: Authenticated hvac client
        logger: Receives one DEBUG record per remote call
    """
    client: hvac.Client
    logger: logging.Logger

    def __init__(self, client: hvac.Client, logger: Optional[logging.Logger] = None):
        self.client = client
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    async def _call(self, op: str, path: str, func: Callable[..., Any], *args, **kwargs) -> Any:
        self.logger.debug(f"{op}({path})")
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except (hvac.exceptions.VaultError, requests.exceptions.RequestException) as e:
            raise UpstreamError(f"{op}({path}): {e}") from e

    async def list_mounts(self) -> Dict[str, Dict[str, Any]]:
        """
        List secret engine mounts.

        Returns:
            Mapping of mountpoint (with trailing slash) to its description
        """
        response = await self._call("ListMounts", "", self.client.sys.list_mounted_secrets_engines)
        if not isinstance(response, dict):
            raise UpstreamError(f"ListMounts: unexpected response {response!r}")
        mounts = response.get("data")
        if mounts is None:
            # Older servers put the mounts at the top level of the response
            mounts = {k: v for k, v in response.items() if k.endswith("/")}
        return mounts

    async def list(self, path: str) -> Optional[List[str]]:
        """
        List the keys directly under path.

        Returns:
            Key names, directories ending in ``/``; None if nothing exists there
        """
        response = await self._call("List", path, self.client.list, path)
        if response is None:
            return None
        keys = (response.get("data") or {}).get("keys")
        if keys is None:
            return None
        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            raise UpstreamError(f"List({path}): malformed keys {keys!r}")
        return keys

    async def read(self, path: str) -> Optional[Dict[str, Any]]:
        """Read the secret at path; None if it does not exist."""
        return await self._call("Read", path, self.client.read, path)

    async def write(self, path: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._call("Write", path, self.client.write_data, path, data=data)
