"""
Cache management for retrieved dataset payloads.

Each dataset ID has two flat files in the cache directory, ``<id>_data``
(already reformatted) and ``<id>_metadata``. A file's presence is the only
cache-hit signal: entries are written once and never invalidated here.
Clearing stale entries is left to the operator.
"""

import os
import logging
from typing import Optional

from .utils.file_utils import write_text_atomic


logger = logging.getLogger(__name__)

DATA = 'data'
METADATA = 'metadata'
PAYLOAD_KINDS = (DATA, METADATA)


class PayloadCache:
    """Manages cached payloads as plain text files"""

    def __init__(self, cache_dir: str = None):
        """Initialize cache with cache directory"""
        if cache_dir is None:
            # Default to data/cache relative to the repository root
            cache_dir = os.path.join(
                os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                'data', 'cache'
            )

        self.cache_dir = cache_dir
        os.makedirs(self.cache_dir, exist_ok=True)

    def path(self, dataset_id: str, kind: str) -> str:
        """Get the full path for a cache file"""
        if kind not in PAYLOAD_KINDS:
            raise ValueError(f"Unknown payload kind: {kind}")
        return os.path.join(self.cache_dir, f"{dataset_id}_{kind}")

    def is_cached(self, dataset_id: str, kind: str) -> bool:
        return os.path.isfile(self.path(dataset_id, kind))

    def load(self, dataset_id: str, kind: str) -> Optional[str]:
        """Load a cached payload, or None on a cache miss"""
        cache_path = self.path(dataset_id, kind)
        if not os.path.isfile(cache_path):
            return None

        with open(cache_path, 'r', encoding='utf-8') as f:
            payload = f.read()
        logger.debug(f"Cache hit for {dataset_id} {kind}")
        return payload

    def save(self, dataset_id: str, kind: str, payload: str) -> str:
        """Write a payload to the cache and return its path"""
        cache_path = self.path(dataset_id, kind)
        write_text_atomic(payload, cache_path)
        logger.info(f"Cached {dataset_id} {kind} to {cache_path}")
        return cache_path

    def clear(self, dataset_id: Optional[str] = None) -> None:
        """Remove cached payloads for one dataset, or the whole cache"""
        for filename in os.listdir(self.cache_dir):
            if dataset_id is not None and filename not in (
                    f"{dataset_id}_{kind}" for kind in PAYLOAD_KINDS):
                continue
            if not filename.endswith(tuple(f"_{kind}" for kind in PAYLOAD_KINDS)):
                continue
            os.remove(os.path.join(self.cache_dir, filename))
            logger.info(f"Removed cached file {filename}")
