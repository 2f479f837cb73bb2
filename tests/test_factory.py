"""Tests for Talos Image Factory schematic resolution and image download."""
from dataclasses import replace
from pathlib import Path

import pytest
import requests
import yaml

from conftest import FakeResponse, FakeSession
from pveprov.core.config import ProvisionerConfig, set_config
from pveprov.core.errors import FetchError
from pveprov.core.scratch import scratch_directory
from pveprov.services.talos.factory import (
    ArtifactDescriptor,
    FetchPhase,
    ImageFactoryClient,
    build_schematic,
    image_url,
    render_schematic,
)
from pveprov.services.talos.releases import latest_talos_version

FACTORY = "https://factory.example"
SCHEMATIC_ID = "376567988ad370138ad8b2698212367b8edcb69b5fd68c80be1f2ec7d603b4ba"


@pytest.fixture
def config():
    return ProvisionerConfig(factory_url=FACTORY, retry_attempts=3)


def image_response(payload=b"qcow2-bytes", length=None):
    headers = {'Content-Length': str(len(payload) if length is None else length)}
    return FakeResponse(chunks=[payload[:4], payload[4:]], headers=headers)


class TestSchematic:
    def test_guest_agent_adds_extension(self):
        schematic = yaml.safe_load(render_schematic(build_schematic(True)))

        assert schematic == {
            'customization': {
                'systemExtensions': {
                    'officialExtensions': ['siderolabs/qemu-guest-agent'],
                },
            },
        }

    def test_without_guest_agent_no_extensions(self):
        schematic = yaml.safe_load(render_schematic(build_schematic(False)))

        assert 'systemExtensions' not in (schematic.get('customization') or {})


class TestDescriptor:
    def test_url(self):
        url = image_url(FACTORY, SCHEMATIC_ID, 'v1.9.5')

        assert url == f"{FACTORY}/image/{SCHEMATIC_ID}/v1.9.5/metal-amd64.qcow2"

    def test_filename_mentions_version(self):
        descriptor = ArtifactDescriptor(SCHEMATIC_ID, 'v1.9.5')

        assert 'v1.9.5' in descriptor.filename
        assert descriptor.filename.endswith('.qcow2')


class TestResolveDescriptor:
    def test_posts_yaml_and_reads_id(self, config):
        session = FakeSession(post=[FakeResponse(201, {'id': SCHEMATIC_ID})])

        schematic_id = ImageFactoryClient(session, config).resolve_descriptor(True)

        method, url, kwargs = session.calls[0]
        assert (method, url) == ('POST', f"{FACTORY}/schematics")
        assert kwargs['headers']['Content-Type'] == 'application/yaml'
        assert b'qemu-guest-agent' in kwargs['data']
        assert kwargs['timeout'] == config.http_timeout
        assert schematic_id == SCHEMATIC_ID

    def test_http_error(self, config):
        session = FakeSession(post=[FakeResponse(400, text="invalid schematic")])

        with pytest.raises(FetchError, match="HTTP 400"):
            ImageFactoryClient(session, config).resolve_descriptor(False)

    def test_missing_id(self, config):
        session = FakeSession(post=[FakeResponse(200, {'schematic': 'x'})])

        with pytest.raises(FetchError, match="no usable 'id'"):
            ImageFactoryClient(session, config).resolve_descriptor(False)

    def test_empty_id(self, config):
        session = FakeSession(post=[FakeResponse(200, {'id': ''})])

        with pytest.raises(FetchError, match="invalid 'id'"):
            ImageFactoryClient(session, config).resolve_descriptor(False)

    def test_transient_failure_is_retried(self, config, no_sleep):
        session = FakeSession(post=[
            requests.ConnectionError("reset"),
            FakeResponse(201, {'id': SCHEMATIC_ID}),
        ])

        assert ImageFactoryClient(session, config).resolve_descriptor(True) == SCHEMATIC_ID
        assert len(session.calls) == 2

    def test_gives_up_after_configured_attempts(self, no_sleep):
        config = ProvisionerConfig(factory_url=FACTORY, retry_attempts=2)
        set_config(config)
        session = FakeSession(post=[requests.Timeout("slow"), requests.Timeout("slow")])

        with pytest.raises(FetchError, match="schematic submission failed"):
            ImageFactoryClient(session, config).resolve_descriptor(True)
        assert len(session.calls) == 2


class TestFetch:
    def test_resolves_then_downloads(self, config, vm_request, tmp_path):
        session = FakeSession(
            post=[FakeResponse(201, {'id': SCHEMATIC_ID})],
            get=[image_response()],
        )
        client = ImageFactoryClient(session, config)

        artifact = client.fetch(vm_request, tmp_path)

        assert artifact.read_bytes() == b"qcow2-bytes"
        assert artifact.parent == tmp_path
        assert session.calls[1][1] == f"{FACTORY}/image/{SCHEMATIC_ID}/v1.9.5/metal-amd64.qcow2"
        assert client.phase is FetchPhase.READY

    def test_known_descriptor_skips_submission(self, config, vm_request, tmp_path):
        session = FakeSession(get=[image_response()])
        request = replace(vm_request, descriptor=SCHEMATIC_ID)

        ImageFactoryClient(session, config).fetch(request, tmp_path)

        assert [c[0] for c in session.calls] == ['GET']

    def test_short_download_is_retried(self, config, vm_request, tmp_path, no_sleep):
        session = FakeSession(
            post=[FakeResponse(201, {'id': SCHEMATIC_ID})],
            get=[image_response(length=100), image_response()],
        )

        artifact = ImageFactoryClient(session, config).fetch(vm_request, tmp_path)

        assert artifact.read_bytes() == b"qcow2-bytes"

    def test_download_http_error(self, config, vm_request, tmp_path):
        session = FakeSession(
            post=[FakeResponse(201, {'id': SCHEMATIC_ID})],
            get=[FakeResponse(404)],
        )
        client = ImageFactoryClient(session, config)

        with pytest.raises(FetchError, match="HTTP 404"):
            client.fetch(vm_request, tmp_path)
        assert client.phase is FetchPhase.FAILED

    def test_empty_download(self, config, vm_request, tmp_path):
        session = FakeSession(
            post=[FakeResponse(201, {'id': SCHEMATIC_ID})],
            get=[FakeResponse(chunks=[], headers={})],
        )

        with pytest.raises(FetchError, match="empty file"):
            ImageFactoryClient(session, config).fetch(vm_request, tmp_path)

    def test_scratch_directory_removed_after_fetch_failure(self, config, vm_request):
        session = FakeSession(post=[FakeResponse(500, text="boom")])
        seen = []

        with pytest.raises(FetchError):
            with scratch_directory() as scratch:
                seen.append(scratch)
                ImageFactoryClient(session, config).fetch(vm_request, scratch)

        assert not Path(seen[0]).exists()

    def test_mock_mode_makes_no_requests(self, config, vm_request, tmp_path):
        session = FakeSession()

        artifact = ImageFactoryClient(session, config, mock=True).fetch(vm_request, tmp_path)

        assert session.calls == []
        assert artifact.exists()


class TestLatestVersion:
    def test_reads_tag_name(self, config):
        session = FakeSession(get=[FakeResponse(200, {'tag_name': 'v1.10.2'})])

        assert latest_talos_version(session, config) == 'v1.10.2'

    def test_falls_back_on_network_error(self, config):
        session = FakeSession(get=[requests.ConnectionError("offline")])

        assert latest_talos_version(session, config) == config.fallback_talos_version

    def test_falls_back_on_bad_payload(self, config):
        session = FakeSession(get=[FakeResponse(200, {'name': 'Talos'})])

        assert latest_talos_version(session, config) == 'v1.9.0'

    def test_falls_back_on_rate_limit(self, config):
        session = FakeSession(get=[FakeResponse(403, text="rate limited")])

        assert latest_talos_version(session, config) == 'v1.9.0'
