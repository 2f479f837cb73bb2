"""LXC template availability (list, download, resolve reference)."""
import re
from typing import List, Optional

from pveprov.core.config import get_config
from pveprov.core.errors import CommandError
from pveprov.core.logger import get_logger
from pveprov.core.retry import retry
from pveprov.services.proxmox.host import ProxmoxHost

logger = get_logger(__name__)


def _version_key(name: str) -> List:
    """Natural sort key: digit runs compare as numbers (12.10 > 12.7)."""
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", name)]


def _template_files(output: str) -> List[str]:
    """Pull template file names out of ``pveam`` listings."""
    files = []
    for line in output.splitlines():
        for token in line.split():
            if token.endswith(('.tar.zst', '.tar.xz', '.tar.gz')):
                files.append(token.split('/')[-1])
    return files


class TemplateManager:
    """Makes sure an LXC template is present in template storage."""

    def __init__(self, host: ProxmoxHost, template_storage: str = 'local'):
        self.host = host
        self.template_storage = template_storage

    def local_templates(self) -> List[str]:
        output = self.host.pveam('list', self.template_storage)
        return _template_files(output)

    def available_templates(self) -> List[str]:
        try:
            self.host.pveam('update')
        except CommandError as e:
            logger.warning(f"Failed to update template list: {e}")
        return _template_files(self.host.pveam('available', '--section', 'system'))

    @staticmethod
    def _newest_match(template: str, files: List[str]) -> Optional[str]:
        """Pick the highest-versioned file whose name starts with ``template``."""
        matches = sorted((f for f in files if f.startswith(template)), key=_version_key)
        return matches[-1] if matches else None

    @retry(
        max_attempts=3,
        delay=5,
        exceptions=(CommandError,),
        attempts_from=lambda: get_config().retry_attempts,
    )
    def download(self, filename: str) -> None:
        logger.info(f"Downloading template {filename}...")
        self.host.pveam(
            'download', self.template_storage, filename,
            timeout=get_config().import_timeout,
        )
        logger.info(f"✓ Downloaded template {filename}")

    def ensure_available(self, template: str) -> str:
        """Return a ``storage:vztmpl/file`` reference, downloading when needed.

        Args:
            template: Template base name (e.g. 'debian-12-standard') or full file name

        Raises:
            CommandError: If the template cannot be found or downloaded
        """
        if self.host.mock:
            filename = template if '.tar' in template else f'{template}.tar.zst'
            logger.info(f"MOCK: Would ensure template {filename}")
            return f'{self.template_storage}:vztmpl/{filename}'

        filename = self._newest_match(template, self.local_templates())
        if filename:
            logger.debug(f"Template {filename} already available")
        else:
            logger.info(f"Template {template} not found locally, looking it up...")
            filename = self._newest_match(template, self.available_templates())
            if not filename:
                raise CommandError(
                    ['pveam', 'available'],
                    stderr=f"no template matching '{template}'",
                )
            self.download(filename)

        return f'{self.template_storage}:vztmpl/{filename}'
