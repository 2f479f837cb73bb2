"""Shared test fixtures for pveprov tests."""
import os
from typing import Dict, Iterable, List, Optional

import pytest
import requests

from pveprov.core.config import set_config
from pveprov.core.errors import CommandError
from pveprov.models.request import NetworkConfig, ProvisionRequest, ResourceKind
from pveprov.services.proxmox.host import ProxmoxHost

STORAGE_HEADER = "Name Type Status Total Used Available %\n"


def storage_table(*rows) -> str:
    """Render ``pvesm status`` output for (name, type[, status]) rows."""
    lines = [STORAGE_HEADER]
    for row in rows:
        name, storage_type = row[0], row[1]
        status = row[2] if len(row) > 2 else 'active'
        lines.append(f"{name} {storage_type} {status} 1000 10 990 1.00%\n")
    return "".join(lines)


class FakeHost(ProxmoxHost):
    """ProxmoxHost whose commands are answered from a script.

    ``responses`` and ``failures`` are keyed by command prefix; the first
    matching prefix wins. ``qm status``/``pct status`` succeed only for ids in
    ``existing``.
    """

    def __init__(
        self,
        responses: Optional[Dict[str, str]] = None,
        failures: Optional[Dict[str, str]] = None,
        existing: Iterable[int] = (),
        storage: str = storage_table(('local-lvm', 'lvmthin')),
        next_id: str = "100\n",
    ):
        super().__init__(mock=False)
        self.calls: List[str] = []
        self.responses = {'pvesm status': storage, 'pvesh get /cluster/nextid': next_id}
        self.responses.update(responses or {})
        self.failures = dict(failures or {})
        self.existing = set(existing)

    def run(self, cmd, timeout=None, mock_output=""):
        cmd = [str(part) for part in cmd]
        line = " ".join(cmd)
        self.calls.append(line)

        if cmd[:2] in (['qm', 'status'], ['pct', 'status']):
            if int(cmd[2]) in self.existing:
                return "status: running\n"
            raise CommandError(cmd, 2, f"Configuration file for {cmd[2]} does not exist")

        for prefix, stderr in self.failures.items():
            if line.startswith(prefix):
                raise CommandError(cmd, 1, stderr)
        for prefix, output in self.responses.items():
            if line.startswith(prefix):
                return output
        return ""

    def ran(self, prefix: str) -> List[str]:
        return [c for c in self.calls if c.startswith(prefix)]


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, chunks=(), headers=None, text=""):
        self.status_code = status_code
        self._json = json_data
        self._chunks = list(chunks)
        self.headers = dict(headers or {})
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json

    def iter_content(self, chunk_size=1):
        return iter(self._chunks)

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """Records requests; answers with queued responses or exceptions."""

    def __init__(self, post=(), get=()):
        self.headers = {}
        self.posts = list(post)
        self.gets = list(get)
        self.calls: List[tuple] = []

    def _next(self, queue):
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url, **kwargs):
        self.calls.append(('POST', url, kwargs))
        return self._next(self.posts)

    def get(self, url, **kwargs):
        self.calls.append(('GET', url, kwargs))
        return self._next(self.gets)


@pytest.fixture(autouse=True)
def reset_runtime_config(monkeypatch):
    """Fresh runtime config per test, without PVEPROV_* leaking in."""
    for key in list(os.environ):
        if key.startswith('PVEPROV_'):
            monkeypatch.delenv(key)
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def no_sleep(monkeypatch):
    """Make retry back-off instantaneous."""
    monkeypatch.setattr("pveprov.core.retry.time.sleep", lambda seconds: None)


@pytest.fixture
def vm_request():
    """A resolved Talos VM request."""
    return ProvisionRequest(
        kind=ResourceKind.VM,
        name='talos',
        cores=2,
        memory=2048,
        disk_size=20,
        version='v1.9.5',
        network=NetworkConfig(),
        guest_agent=True,
        tags=('talos',),
    )


@pytest.fixture
def container_request():
    """A resolved EteSync container request."""
    return ProvisionRequest(
        kind=ResourceKind.CONTAINER,
        name='etesync',
        cores=2,
        memory=1024,
        disk_size=8,
        version='alpine',
        network=NetworkConfig(),
        template='debian-12-standard',
        disk_cache=None,
        tags=('calendar',),
    )
