"""
Registry for dataset sources.

The registry provides a central place to register and retrieve dataset
sources by name. Each entry is a factory, so every run gets a fresh source
instance with its own per-dataset state. The set of sources is whatever
data_sources.py registers; nothing is discovered or loaded by class name.
"""

from typing import Callable, Dict, List, TYPE_CHECKING

from .errors import ConfigError

if TYPE_CHECKING:
    from .sources import DatasetSource


SourceFactory = Callable[..., 'DatasetSource']


class SourceRegistry:
    """Central registry for all dataset sources"""

    def __init__(self):
        self._factories: Dict[str, SourceFactory] = {}

    def register(self, name: str, factory: SourceFactory) -> None:
        """Register a dataset source factory"""
        if not name:
            raise ValueError("Source name cannot be empty")
        if name in self._factories:
            raise ValueError(f"Dataset source '{name}' already registered")

        self._factories[name] = factory

    def create(self, name: str, **kwargs) -> 'DatasetSource':
        """
        Instantiate a registered source.

        Raises:
            ConfigError: If no source is registered under *name*.
        """
        factory = self._factories.get(name)
        if factory is None:
            raise ConfigError(
                f"Unknown dataset source '{name}'. "
                f"Available sources: {', '.join(self.list_sources()) or 'none'}"
            )
        return factory(**kwargs)

    def __contains__(self, name: str) -> bool:
        return name in self._factories

    def list_sources(self) -> List[str]:
        """List all registered source names"""
        return sorted(self._factories)

    def clear(self) -> None:
        """Clear all registered sources (mainly for testing)"""
        self._factories.clear()


# Global singleton registry, populated by data_sources
REGISTRY = SourceRegistry()
