"""
End-to-end tests against a throwaway ``vault server -dev`` and a real FUSE mount.
Skipped unless the vault binary, /dev/fuse and pyfuse3 are available.
"""
import os
import shutil
import socket
import subprocess
import sys
import time

import hvac
import pytest

pytestmark = [
    pytest.mark.skipif(shutil.which("vault") is None, reason="vault binary not installed"),
    pytest.mark.skipif(not os.path.exists("/dev/fuse"), reason="FUSE not available"),
]

ROOT_TOKEN = "devroot"
SETUP_TIMEOUT = 30


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def wait_for(check, what):
    deadline = time.monotonic() + SETUP_TIMEOUT
    while time.monotonic() < deadline:
        try:
            if check():
                return
        except Exception:
            pass
        time.sleep(0.05)
    pytest.fail(f"{what} never became ready")


@pytest.fixture
def dev_vault():
    pytest.importorskip("pyfuse3")
    addr = f"127.0.0.1:{free_port()}"
    proc = subprocess.Popen(
        ["vault", "server", "-dev", f"-dev-root-token-id={ROOT_TOKEN}", f"-dev-listen-address={addr}"],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    client = hvac.Client(url=f"http://{addr}", token=ROOT_TOKEN, timeout=1)
    try:
        wait_for(lambda: client.sys.list_mounted_secrets_engines() is not None, "vault")
        yield client
    finally:
        proc.kill()
        proc.wait()


@pytest.fixture
def mount(dev_vault, tmp_path):
    """Returns a function mounting the filesystem once Vault is set up."""
    procs = []
    mountpoint = tmp_path / "mnt"
    mountpoint.mkdir()

    def start():
        env = dict(os.environ, VAULT_ADDR=dev_vault.url, VAULT_TOKEN=ROOT_TOKEN)
        procs.append(subprocess.Popen([sys.executable, "-m", "vaultfs.main", str(mountpoint)], env=env))
        wait_for(lambda: os.path.ismount(mountpoint), "mount")
        return mountpoint

    yield start

    for proc in procs:
        proc.terminate()
        try:
            proc.wait(timeout=10)
        except subprocess.TimeoutExpired:
            subprocess.run(["fusermount3", "-u", str(mountpoint)], check=False)
            proc.kill()
            proc.wait()


def readents(path):
    return sorted(name for name in os.listdir(path) if not name.startswith("."))


def write_retrying(client, path, data):
    # A freshly enabled KV v2 engine rejects writes until its upgrade finishes
    def write():
        client.write_data(path, data=data)
        return True

    wait_for(write, f"write {path}")


def test_mount_lists_default_mounts(mount):
    assert readents(mount()) == ["cubbyhole", "identity", "secret", "sys"]


def test_kvv1(dev_vault, mount):
    dev_vault.sys.enable_secrets_engine("kv", path="kvv1", options={"version": "1"})
    kvdir = mount() / "kvv1"
    assert readents(kvdir) == []

    write_retrying(dev_vault, "kvv1/foo", {"a": 1})
    assert readents(kvdir) == ["foo"]
    assert (kvdir / "foo").read_text() == '{"a":1}'

    write_retrying(dev_vault, "kvv1/foo", {"a": 2})
    assert (kvdir / "foo").read_text() == '{"a":2}'


def test_kvv2(dev_vault, mount):
    dev_vault.sys.enable_secrets_engine("kv", path="kvv2", options={"version": "2"})
    kvdir = mount() / "kvv2"
    assert readents(kvdir) == []

    write_retrying(dev_vault, "kvv2/data/foo", {"data": {"a": 1}})
    assert readents(kvdir) == ["foo"]
    assert (kvdir / "foo").read_text() == '{"a":1}'


def test_writes_are_rejected(dev_vault, mount):
    dev_vault.sys.enable_secrets_engine("kv", path="kvv1", options={"version": "1"})
    write_retrying(dev_vault, "kvv1/foo", {"a": 1})
    kvdir = mount() / "kvv1"

    with pytest.raises(PermissionError):
        open(kvdir / "foo", "w")
    with pytest.raises(PermissionError):
        (kvdir / "bar").write_text("x")
    with pytest.raises(PermissionError):
        (kvdir / "foo").unlink()
    assert dev_vault.read("kvv1/foo")["data"] == {"a": 1}
    assert dev_vault.read("kvv1/bar") is None
