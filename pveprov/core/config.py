"""pveprov runtime configuration and settings."""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class ProvisionerConfig:
    """Runtime configuration for provisioning runs.

    Attributes:
        command_timeout: Timeout in seconds for ordinary host commands (default: 120)
        import_timeout: Timeout in seconds for disk import and template download (default: 1800)
        exec_timeout: Timeout in seconds for commands run inside a container (default: 900)
        http_timeout: Timeout in seconds for API calls (default: 30)
        download_timeout: Read timeout in seconds for image downloads (default: 300)
        retry_attempts: Attempts for transient network failures (default: 3)
        factory_url: Talos Image Factory base URL
        releases_url: GitHub API endpoint for the latest Talos release
        fallback_talos_version: Version used when the release lookup fails
        architecture: Image architecture (default: amd64)
    """

    command_timeout: int = 120
    import_timeout: int = 1800
    exec_timeout: int = 900
    http_timeout: int = 30
    download_timeout: int = 300
    retry_attempts: int = 3
    factory_url: str = "https://factory.talos.dev"
    releases_url: str = "https://api.github.com/repos/siderolabs/talos/releases/latest"
    fallback_talos_version: str = "v1.9.0"
    architecture: str = "amd64"

    @classmethod
    def from_env(cls) -> "ProvisionerConfig":
        """Create config from ``PVEPROV_*`` environment variables."""
        return cls(
            command_timeout=int(os.getenv("PVEPROV_COMMAND_TIMEOUT", cls.command_timeout)),
            import_timeout=int(os.getenv("PVEPROV_IMPORT_TIMEOUT", cls.import_timeout)),
            exec_timeout=int(os.getenv("PVEPROV_EXEC_TIMEOUT", cls.exec_timeout)),
            http_timeout=int(os.getenv("PVEPROV_HTTP_TIMEOUT", cls.http_timeout)),
            download_timeout=int(os.getenv("PVEPROV_DOWNLOAD_TIMEOUT", cls.download_timeout)),
            retry_attempts=int(os.getenv("PVEPROV_RETRY_ATTEMPTS", cls.retry_attempts)),
            factory_url=os.getenv("PVEPROV_FACTORY_URL", cls.factory_url).rstrip("/"),
            releases_url=os.getenv("PVEPROV_RELEASES_URL", cls.releases_url),
            fallback_talos_version=os.getenv(
                "PVEPROV_FALLBACK_TALOS_VERSION", cls.fallback_talos_version
            ),
            architecture=os.getenv("PVEPROV_ARCH", cls.architecture),
        )


_config: Optional[ProvisionerConfig] = None


def get_config() -> ProvisionerConfig:
    """Get the global configuration (built from the environment on first use)."""
    global _config
    if _config is None:
        _config = ProvisionerConfig.from_env()
    return _config


def set_config(config: Optional[ProvisionerConfig]):
    """Replace the global configuration; ``None`` resets it to the environment."""
    global _config
    _config = config
