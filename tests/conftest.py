import copy

import pytest


class FakeVault:
    """
    In-memory RemoteStore with Vault's list/read behaviour for KV v1 and v2.

    Secrets are kept per mount by logical key. KV v2 mounts answer lists under
    ``metadata/`` and reads/writes under ``data/``.
    """

    def __init__(self):
        self.mounts = {
            "cubbyhole/": {"type": "cubbyhole", "options": None},
            "identity/": {"type": "identity", "options": None},
            "secret/": {"type": "kv", "options": {"version": "2"}},
            "sys/": {"type": "system", "options": None},
        }
        self.secrets = {"secret": {}}
        self.versions = {}
        self.calls = []
        # path -> raw key list, overriding the computed listing
        self.listings = {}

    def enable_kv(self, name, version):
        self.mounts[name + "/"] = {"type": "kv", "options": {"version": str(version)}}
        self.secrets[name] = {}

    def _split(self, path):
        mount, _, rest = path.partition("/")
        if mount not in self.secrets:
            raise KeyError(path)
        version = self.mounts[mount + "/"]["options"].get("version")
        return mount, version, rest

    async def list_mounts(self):
        self.calls.append(("list_mounts",))
        return copy.deepcopy(self.mounts)

    async def list(self, path):
        self.calls.append(("list", path))
        if path in self.listings:
            return list(self.listings[path])
        mount, version, rest = self._split(path)
        if version == "2":
            assert rest == "metadata" or rest.startswith("metadata/"), path
            rest = rest[len("metadata"):].strip("/")
        prefix = rest + "/" if rest else ""
        names = []
        for key in sorted(self.secrets[mount]):
            if not key.startswith(prefix):
                continue
            head, sep, _ = key[len(prefix):].partition("/")
            name = head + sep
            if name not in names:
                names.append(name)
        return names or None

    async def read(self, path):
        self.calls.append(("read", path))
        mount, version, rest = self._split(path)
        if version == "2":
            assert rest.startswith("data/"), path
            key = rest[len("data/"):]
            if key not in self.secrets[mount]:
                return None
            return {
                "data": {
                    "data": copy.deepcopy(self.secrets[mount][key]),
                    "metadata": {"version": self.versions[(mount, key)], "deletion_time": ""},
                },
                "lease_duration": 0,
            }
        if rest not in self.secrets[mount]:
            return None
        return {"data": copy.deepcopy(self.secrets[mount][rest]), "lease_duration": 2764800}

    async def write(self, path, data):
        self.calls.append(("write", path))
        mount, version, rest = self._split(path)
        if version == "2":
            key = rest[len("data/"):]
            self.secrets[mount][key] = copy.deepcopy(data["data"])
            self.versions[(mount, key)] = self.versions.get((mount, key), 0) + 1
            return {"data": {"version": self.versions[(mount, key)]}}
        self.secrets[mount][rest] = copy.deepcopy(data)
        return None

    def remote_calls(self, kind):
        return [c for c in self.calls if c[0] == kind]


@pytest.fixture
def vault():
    return FakeVault()
