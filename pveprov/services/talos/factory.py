"""Talos Image Factory client: schematic -> descriptor -> disk image.

Phases of a fetch::

    NO_DESCRIPTOR -> DESCRIPTOR_RESOLVED -> DOWNLOADING -> READY
                  \\_________________________________________-> FAILED
"""
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

import requests
import yaml
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)

from pveprov.core.config import ProvisionerConfig, get_config
from pveprov.core.errors import FetchError
from pveprov.core.logger import console, get_logger
from pveprov.core.retry import retry
from pveprov.models.request import ProvisionRequest

logger = get_logger(__name__)

GUEST_AGENT_EXTENSION = 'siderolabs/qemu-guest-agent'
USER_AGENT = 'pveprov'
CHUNK_SIZE = 1024 * 1024


class FetchPhase(str, Enum):
    NO_DESCRIPTOR = "no-descriptor"
    DESCRIPTOR_RESOLVED = "descriptor-resolved"
    DOWNLOADING = "downloading"
    READY = "ready"
    FAILED = "failed"


class IncompleteDownload(requests.ConnectionError):
    """Fewer bytes arrived than the server announced."""


TRANSIENT_ERRORS = (requests.ConnectionError, requests.Timeout)


def build_schematic(guest_agent: bool) -> Dict:
    """Customization document submitted to the Image Factory."""
    if not guest_agent:
        return {'customization': {}}
    return {
        'customization': {
            'systemExtensions': {
                'officialExtensions': [GUEST_AGENT_EXTENSION],
            },
        },
    }


def render_schematic(schematic: Dict) -> str:
    return yaml.safe_dump(schematic, sort_keys=False, default_flow_style=False)


@dataclass(frozen=True)
class ArtifactDescriptor:
    """Schematic id plus the coordinates that pin one image build."""
    schematic_id: str
    version: str
    architecture: str = 'amd64'
    platform: str = 'metal'
    extension: str = 'qcow2'

    def url(self, base: str) -> str:
        return (
            f"{base.rstrip('/')}/image/{self.schematic_id}/{self.version}/"
            f"{self.platform}-{self.architecture}.{self.extension}"
        )

    @property
    def filename(self) -> str:
        return f"talos-{self.version}-{self.schematic_id}.{self.extension}"


def image_url(base: str, schematic_id: str, version: str, architecture: str = 'amd64') -> str:
    """Download URL for a build; a pure function of its inputs."""
    return ArtifactDescriptor(schematic_id, version, architecture).url(base)


def _retry_attempts() -> int:
    return get_config().retry_attempts


class ImageFactoryClient:
    """Resolves schematics and downloads images from the Talos Image Factory."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        config: Optional[ProvisionerConfig] = None,
        mock: bool = False,
    ):
        self.mock = mock
        self.config = config or get_config()
        self.session = session or requests.Session()
        self.session.headers.setdefault('User-Agent', USER_AGENT)
        self.phase = FetchPhase.NO_DESCRIPTOR

    @retry(max_attempts=3, delay=2.0, exceptions=TRANSIENT_ERRORS, attempts_from=_retry_attempts)
    def _post_schematic(self, body: str) -> requests.Response:
        return self.session.post(
            f"{self.config.factory_url}/schematics",
            data=body.encode('utf-8'),
            headers={'Content-Type': 'application/yaml'},
            timeout=self.config.http_timeout,
        )

    def resolve_descriptor(self, guest_agent: bool) -> str:
        """Submit the schematic and return the id the factory assigns to it.

        Raises:
            FetchError: Network failure after retries, non-2xx, or bad JSON
        """
        body = render_schematic(build_schematic(guest_agent))
        logger.debug(f"Schematic:\n{body}")

        try:
            response = self._post_schematic(body)
        except requests.RequestException as e:
            raise FetchError(f"schematic submission failed: {e}") from e

        if not response.ok:
            raise FetchError(
                f"schematic submission returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            schematic_id = response.json()['id']
        except (ValueError, KeyError, TypeError) as e:
            raise FetchError(f"schematic response has no usable 'id': {e}") from e

        if not isinstance(schematic_id, str) or not schematic_id:
            raise FetchError(f"schematic response has an invalid 'id': {schematic_id!r}")
        return schematic_id

    @retry(max_attempts=3, delay=2.0, exceptions=TRANSIENT_ERRORS, attempts_from=_retry_attempts)
    def _stream_to(self, url: str, destination: Path) -> int:
        with self.session.get(
            url,
            stream=True,
            timeout=(self.config.http_timeout, self.config.download_timeout),
        ) as response:
            if not response.ok:
                raise FetchError(f"download returned HTTP {response.status_code}: {url}")

            expected = int(response.headers.get('Content-Length') or 0)
            received = 0
            with Progress(
                TextColumn("[cyan]{task.description}"),
                BarColumn(),
                DownloadColumn(),
                TransferSpeedColumn(),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task(destination.name, total=expected or None)
                with open(destination, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        f.write(chunk)
                        received += len(chunk)
                        progress.update(task, advance=len(chunk))

        if expected and received != expected:
            raise IncompleteDownload(f"received {received} of {expected} bytes from {url}")
        return received

    def download(self, url: str, destination: Path) -> Path:
        """Stream ``url`` into ``destination``.

        Raises:
            FetchError: Network failure after retries, non-2xx, or empty body
        """
        try:
            size = self._stream_to(url, destination)
        except requests.RequestException as e:
            raise FetchError(f"download failed: {url}: {e}") from e
        except OSError as e:
            raise FetchError(f"could not write {destination}: {e}") from e

        if size == 0:
            raise FetchError(f"download produced an empty file: {url}")
        return destination

    def fetch(self, request: ProvisionRequest, scratch_dir: Path) -> Path:
        """Resolve the descriptor for ``request`` and download its disk image.

        A descriptor already present on the request skips schematic submission.

        Args:
            request: Resolved request (version, guest_agent, descriptor)
            scratch_dir: Directory the image is written to; owned by the caller

        Returns:
            Path of the downloaded image

        Raises:
            FetchError: Any failure; ``self.phase`` is FAILED afterwards
        """
        self.phase = FetchPhase.NO_DESCRIPTOR
        if self.mock:
            return self._mock_fetch(request, Path(scratch_dir))

        try:
            if request.descriptor:
                schematic_id = request.descriptor
                logger.info(f"Using known schematic ID: {schematic_id}")
            else:
                logger.info("Building Talos Image Factory schematic…")
                schematic_id = self.resolve_descriptor(request.guest_agent)
                logger.info(f"✓ Schematic ID: {schematic_id}")
            self.phase = FetchPhase.DESCRIPTOR_RESOLVED

            descriptor = ArtifactDescriptor(
                schematic_id, request.version, self.config.architecture
            )
            url = descriptor.url(self.config.factory_url)
            destination = Path(scratch_dir) / descriptor.filename

            self.phase = FetchPhase.DOWNLOADING
            logger.info(f"Downloading Talos image: {url}")
            self.download(url, destination)
        except FetchError:
            self.phase = FetchPhase.FAILED
            raise

        self.phase = FetchPhase.READY
        logger.info(f"✓ Downloaded: {destination}")
        return destination

    def _mock_fetch(self, request: ProvisionRequest, scratch_dir: Path) -> Path:
        schematic_id = request.descriptor or 'mock-schematic'
        if not request.descriptor:
            logger.info(
                f"MOCK: Would POST schematic to {self.config.factory_url}/schematics:\n"
                f"{render_schematic(build_schematic(request.guest_agent))}"
            )
        descriptor = ArtifactDescriptor(schematic_id, request.version, self.config.architecture)
        logger.info(f"MOCK: Would download {descriptor.url(self.config.factory_url)}")
        destination = scratch_dir / descriptor.filename
        destination.touch()
        self.phase = FetchPhase.READY
        return destination
