"""Latest Talos release lookup."""
from typing import Optional

import requests

from pveprov.core.config import ProvisionerConfig, get_config
from pveprov.core.logger import get_logger

logger = get_logger(__name__)


def latest_talos_version(
    session: Optional[requests.Session] = None,
    config: Optional[ProvisionerConfig] = None,
) -> str:
    """Return the newest Talos tag (e.g. 'v1.9.5').

    Falls back to the configured last-known-good version when GitHub cannot be
    reached or answers with something unexpected. The fallback is logged as a
    warning because the run then uses a possibly stale default.
    """
    config = config or get_config()
    session = session or requests.Session()

    try:
        response = session.get(
            config.releases_url,
            headers={'Accept': 'application/vnd.github+json'},
            timeout=config.http_timeout,
        )
        response.raise_for_status()
        tag = response.json()['tag_name']
        if not isinstance(tag, str) or not tag.strip():
            raise ValueError(f"empty tag_name {tag!r}")
        return tag.strip()
    except (requests.RequestException, ValueError, KeyError, TypeError) as e:
        logger.warning(
            f"Could not look up the latest Talos release ({e}); "
            f"falling back to {config.fallback_talos_version}"
        )
        return config.fallback_talos_version
