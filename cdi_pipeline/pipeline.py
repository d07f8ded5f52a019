"""
Retrieval pipeline.

The RetrievalPipeline class coordinates fetching, reformatting and caching
of one dataset's data and metadata for a dataset source. Datasets are
processed strictly one at a time.
"""

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TYPE_CHECKING

from .cache import DATA, METADATA, PayloadCache
from .errors import CdiError, DatasetNotFoundError, RetrievalFailedError
from .loaders import BaseLoader, FetchResult, FetchStatus
from .processors import TableProcessor

if TYPE_CHECKING:
    from .sources import DatasetSource


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

# Renewals allowed within one attempt before it is counted as a failure
MAX_SESSION_RENEWALS = 3


class Outcome(enum.Enum):
    SUCCESS = 'success'
    NOT_FOUND = 'not_found'
    FAILED = 'failed'


@dataclass(frozen=True)
class RetrievalResult:
    """Outcome of retrieving one dataset"""
    dataset_id: str
    outcome: Outcome
    reason: Optional[str] = None
    data: Optional[str] = None
    metadata: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == Outcome.SUCCESS

    def __bool__(self) -> bool:
        return self.success


def _log_progress(message: str) -> None:
    logger.info(message)


class RetrievalPipeline:
    """
    Cached, retried acquisition of a dataset's payloads.

    Args:
        source: The dataset source supplying loaders, column rules and
            metadata preprocessing.
        cache: Where payloads are stored.
        retries: Attempts per network fetch (at least 1).
        retry_wait: Constant wait in seconds between failed attempts.
        progress: Receives countdown messages while waiting to retry.
        sleep: Blocking wait, replaced in tests.
    """

    def __init__(self, source: 'DatasetSource', cache: PayloadCache,
                 data_loader: Optional[BaseLoader] = None,
                 metadata_loader: Optional[BaseLoader] = None,
                 retries: int = 3, retry_wait: int = 30,
                 progress: Optional[ProgressCallback] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 processor: Optional[TableProcessor] = None):
        if retries < 1:
            raise ValueError("retries must be at least 1")
        if retry_wait < 0:
            raise ValueError("retry_wait cannot be negative")

        self.source = source
        self.cache = cache
        self.data_loader = data_loader or source.data_loader()
        self.metadata_loader = metadata_loader or source.metadata_loader()
        self.retries = retries
        self.retry_wait = retry_wait
        self.progress = progress or _log_progress
        self.sleep = sleep
        self.processor = processor or TableProcessor()

    def retrieve(self, dataset_id: str) -> RetrievalResult:
        """
        Retrieve and preprocess a dataset.

        Failures never propagate: not-found, exhausted retries and
        source-specific processing errors all come back as a result.
        """
        try:
            data = self._load_data(dataset_id)
            metadata = self._load_metadata(dataset_id)
            self.source.preprocess(dataset_id, data, metadata)

        except DatasetNotFoundError as e:
            logger.warning(str(e))
            return RetrievalResult(dataset_id, Outcome.NOT_FOUND, reason=str(e))
        except RetrievalFailedError as e:
            logger.error(str(e))
            return RetrievalResult(dataset_id, Outcome.FAILED, reason=str(e))
        except (CdiError, OSError) as e:
            logger.error(f"Error processing {dataset_id}: {e}")
            return RetrievalResult(dataset_id, Outcome.FAILED, reason=str(e))

        return RetrievalResult(dataset_id, Outcome.SUCCESS, data=data, metadata=metadata)

    def _load_data(self, dataset_id: str) -> str:
        # Cached data was reformatted before it was stored
        cached = self.cache.load(dataset_id, DATA)
        if cached is not None:
            return cached

        raw = self._fetch(self.data_loader, dataset_id, DATA)
        reformatted = self.processor.process(self.source, raw)
        self.cache.save(dataset_id, DATA, reformatted)
        return reformatted

    def _load_metadata(self, dataset_id: str) -> str:
        cached = self.cache.load(dataset_id, METADATA)
        if cached is not None:
            return cached

        metadata = self._fetch(self.metadata_loader, dataset_id, METADATA)
        self.cache.save(dataset_id, METADATA, metadata)
        return metadata

    def _fetch(self, loader: BaseLoader, dataset_id: str, kind: str) -> str:
        """
        Fetch one payload, retrying transient failures.

        Raises:
            DatasetNotFoundError: The service does not know *dataset_id*.
            RetrievalFailedError: Every attempt failed.
        """
        attempts_left = self.retries

        while attempts_left > 0:
            result = self._attempt(loader, dataset_id, kind)

            if result.status == FetchStatus.OK:
                return result.payload
            if result.status == FetchStatus.NOT_FOUND:
                raise DatasetNotFoundError(dataset_id)

            attempts_left -= 1
            logger.warning(
                f"{kind.capitalize()} retrieval attempt for {dataset_id} failed: "
                f"{result.reason} ({attempts_left} attempts remaining)"
            )
            if attempts_left > 0:
                self._wait(kind, attempts_left)

        raise RetrievalFailedError(dataset_id, kind, self.retries)

    def _attempt(self, loader: BaseLoader, dataset_id: str, kind: str) -> FetchResult:
        """One attempt, renewing the session as often as the service asks"""
        renewals = 0

        while True:
            try:
                result = loader.fetch(dataset_id)
            except Exception as e:
                logger.debug(f"Unexpected error fetching {kind} for {dataset_id}", exc_info=True)
                return FetchResult.failed(f"{type(e).__name__}: {e}")

            if result.status != FetchStatus.SESSION_EXPIRED:
                return result

            if renewals >= MAX_SESSION_RENEWALS:
                return FetchResult.failed(f"Session still expired after {renewals} renewals")

            renewals += 1
            logger.info(f"Session expired while fetching {kind} for {dataset_id}, renewing")
            try:
                loader.renew_session()
            except CdiError as e:
                return FetchResult.failed(str(e))

    def _wait(self, kind: str, attempts_left: int) -> None:
        for remaining in range(self.retry_wait, 0, -1):
            self.progress(
                f"{kind.capitalize()} retrieval failed. Retrying in {remaining} seconds "
                f"({attempts_left} attempts remaining)"
            )
            self.sleep(1)
