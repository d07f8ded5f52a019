# cdi_pipeline/config.py
import os
import pathlib
import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = './data/cache'
DEFAULT_TEMPLATES_DIR = './templates'
DEFAULT_OUTPUT_DIR = './data/output'
DEFAULT_NETWORK_RETRIES = 3
DEFAULT_RETRY_WAIT = 30
DEFAULT_HTTP_TIMEOUT = 60


@dataclass(frozen=True)
class GeneratorConfig:
    """Run settings for the CDI generator"""
    cache_dir: str = DEFAULT_CACHE_DIR
    templates_dir: str = DEFAULT_TEMPLATES_DIR
    output_dir: str = DEFAULT_OUTPUT_DIR
    network_retries: int = DEFAULT_NETWORK_RETRIES
    retry_wait: int = DEFAULT_RETRY_WAIT
    http_timeout: int = DEFAULT_HTTP_TIMEOUT
    csr_url: Optional[str] = None
    sources: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.network_retries < 1:
            raise ConfigError(f"Network retries must be at least 1 (got {self.network_retries})")
        if self.retry_wait < 0:
            raise ConfigError(f"Retry wait cannot be negative (got {self.retry_wait})")
        if self.http_timeout <= 0:
            raise ConfigError(f"HTTP timeout must be positive (got {self.http_timeout})")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 dotenv_path: Optional[str] = None) -> 'GeneratorConfig':
        """
        Build the configuration from CDI_* environment variables.

        A .env file in the project root (or *dotenv_path*) is loaded first
        when *environ* is not given. Variables already set in the
        environment take precedence over the file.

        Raises:
            ConfigError: If a numeric setting is not an integer or is out of range.
        """
        if environ is None:
            if dotenv_path is None:
                dotenv_path = pathlib.Path(__file__).resolve().parent.parent / '.env'
            if os.path.exists(dotenv_path):
                logger.debug(f"Loading environment variables from: {dotenv_path}")
                load_dotenv(dotenv_path=dotenv_path)
            environ = os.environ

        sources = environ.get('CDI_SOURCES', '')

        config = cls(
            cache_dir=environ.get('CDI_CACHE_DIR', DEFAULT_CACHE_DIR),
            templates_dir=environ.get('CDI_TEMPLATES_DIR', DEFAULT_TEMPLATES_DIR),
            output_dir=environ.get('CDI_OUTPUT_DIR', DEFAULT_OUTPUT_DIR),
            network_retries=_int_setting(environ, 'CDI_NETWORK_RETRIES', DEFAULT_NETWORK_RETRIES),
            retry_wait=_int_setting(environ, 'CDI_RETRY_WAIT', DEFAULT_RETRY_WAIT),
            http_timeout=_int_setting(environ, 'CDI_HTTP_TIMEOUT', DEFAULT_HTTP_TIMEOUT),
            csr_url=environ.get('CDI_CSR_URL') or None,
            sources=tuple(s.strip() for s in sources.split(';') if s.strip()),
        )
        logger.debug(f"Loaded configuration: {config}")
        return config

    def source_enabled(self, name: str) -> bool:
        """An empty source list enables every registered source"""
        return not self.sources or name in self.sources


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer (got '{value}')") from None
