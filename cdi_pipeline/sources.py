"""
Dataset source definitions.

A DatasetSource encapsulates everything the generator needs to know about
one family of datasets: how IDs look, where data and metadata come from,
which columns are kept and how they are padded, and how template tags and
summary values are looked up in a retrieved dataset.

A source holds the state of the dataset it retrieved most recently, so one
instance handles one dataset at a time.
"""

import logging
import re
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, TYPE_CHECKING
import xml.etree.ElementTree as ET

from .errors import ImporterError, InvalidLookupValueError, UnrecognisedTagError
from .loaders import DEFAULT_TIMEOUT, BaseLoader, HTTPLoader, PangaVistaLoader
from .lookups import IntervalLookup
from .padding import ColumnPaddingSpec
from .processors import Column
from .template import populate

if TYPE_CHECKING:
    from .models import ConverterModel
    from .pipeline import RetrievalPipeline


logger = logging.getLogger(__name__)


class DatasetSource(ABC):
    """
    Base class for dataset sources.

    Args:
        lookup: CSR reference table, if one was loaded.
        timeout: Per-request timeout in seconds for the source's loaders.
    """

    name: str = ''
    id_format: str = ''
    id_descriptor: str = 'dataset ID'
    ids_descriptor: str = 'dataset IDs'
    id_pattern: str = '.+'

    # Tabular data layout
    header_start: str = ''
    source_separator: str = '\t'
    output_separator: str = ';'

    output_formats: Sequence[str] = ()

    def __init__(self, lookup: Optional[IntervalLookup] = None, timeout: int = DEFAULT_TIMEOUT):
        if not self.name:
            raise ValueError(f"{type(self).__name__} must define a name")
        self.lookup = lookup
        self.timeout = timeout
        self.pipeline: Optional['RetrievalPipeline'] = None
        self.current_id: Optional[str] = None

    def __repr__(self):
        return f"{type(self).__name__}(name='{self.name}')"

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------
    def validate_id_format(self, dataset_id: Optional[str]) -> bool:
        """Cheap syntactic check before any retrieval is attempted"""
        if dataset_id is None:
            return False
        return re.fullmatch(self.id_pattern, dataset_id) is not None

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------
    @abstractmethod
    def data_loader(self) -> BaseLoader:
        """Loader for the dataset's tabular data"""

    @abstractmethod
    def metadata_loader(self) -> BaseLoader:
        """Loader for the dataset's metadata"""

    def attach(self, pipeline: 'RetrievalPipeline') -> None:
        self.pipeline = pipeline

    def retrieve(self, dataset_id: str) -> bool:
        """Retrieve *dataset_id* and make it the current dataset.

        Returns:
            True if the dataset is ready for template population.
        """
        if self.pipeline is None:
            raise RuntimeError(f"No retrieval pipeline attached to {self.name}")
        return self.pipeline.retrieve(dataset_id).success

    def preprocess(self, dataset_id: str, data: str, metadata: str) -> None:
        """Take in a retrieved dataset.

        Called by the pipeline with the stored (already reformatted) data
        and the raw metadata. Any previous dataset's state is discarded
        first, so a failure here never leaves it behind.

        Raises:
            ImporterError: If the payloads cannot be interpreted.
        """
        self.reset()
        self.current_id = dataset_id
        self.preprocess_data(data)
        self.preprocess_metadata(metadata)

    def reset(self) -> None:
        """Forget the current dataset"""
        self.current_id = None

    def preprocess_data(self, data: str) -> None:
        pass

    @abstractmethod
    def preprocess_metadata(self, metadata: str) -> None:
        pass

    # ------------------------------------------------------------------
    # Column layout
    # ------------------------------------------------------------------
    @abstractmethod
    def select_columns(self, column_names: List[str]) -> List[Column]:
        """Choose and order the output columns from the source header.

        Raises:
            ImporterError: If a required column is missing.
        """

    @abstractmethod
    def column_padding_spec(self, column_name: str) -> Optional[ColumnPaddingSpec]:
        """Padding for an output column, or None to pass values through.

        Raises:
            ImporterError: If the column is not one this source knows.
        """

    def format_value(self, column: Column, value: str) -> str:
        """Source-specific rewrite of a value before padding"""
        return value

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------
    def tag_resolvers(self) -> Dict[str, Callable[[], Optional[str]]]:
        """Map of template tag name to value lookup"""
        return {}

    def resolve_tag(self, tag: str) -> Optional[str]:
        """Look up the value of a template tag for the current dataset.

        Raises:
            UnrecognisedTagError: If this source has no such tag.
        """
        resolver = self.tag_resolvers().get(tag)
        if resolver is None:
            raise UnrecognisedTagError(tag)
        return resolver()

    def populate_template(self, template: str) -> str:
        return populate(template, self.resolve_tag)

    @abstractmethod
    def model_identifier(self) -> str:
        """Which converter model variant fits the current dataset"""

    def models(self, templates_dir: str) -> List['ConverterModel']:
        """Converter models to run for the current dataset"""
        from .models import ConverterModel

        identifier = self.model_identifier()
        return [
            ConverterModel(templates_dir, self.name, identifier, output_format)
            for output_format in self.output_formats
        ]

    # ------------------------------------------------------------------
    # Summary values
    # ------------------------------------------------------------------
    @abstractmethod
    def local_cdi_id(self) -> str: ...

    @abstractmethod
    def dataset_name(self) -> str: ...

    @abstractmethod
    def dataset_id(self) -> str: ...

    @abstractmethod
    def doi(self) -> Optional[str]: ...

    @abstractmethod
    def doi_url(self) -> Optional[str]: ...

    @abstractmethod
    def abstract(self) -> Optional[str]: ...

    @abstractmethod
    def cruise_name(self) -> str: ...

    @abstractmethod
    def platform_code(self) -> str: ...

    @abstractmethod
    def start_date(self) -> date: ...

    @abstractmethod
    def west_longitude(self) -> float: ...

    @abstractmethod
    def east_longitude(self) -> float: ...

    @abstractmethod
    def south_latitude(self) -> float: ...

    @abstractmethod
    def north_latitude(self) -> float: ...

    @abstractmethod
    def start_date_time(self) -> int: ...

    @abstractmethod
    def end_date_time(self) -> int: ...

    def documentation_url(self) -> Optional[str]:
        return None

    def qc_comment(self) -> str:
        return ''

    def csr_reference(self) -> Optional[str]:
        return None


# ----------------------------------------------------------------------
# PANGAEA
# ----------------------------------------------------------------------

PANGAEA_DATA_URL = 'https://doi.pangaea.de/10.1594/PANGAEA.{dataset_id}?format=textfile'
PANGAEA_DOI_URL = 'https://doi.pangaea.de/{doi}'
METADATA_NS = 'http://www.pangaea.de/MetaData'

PATH_SHIP_NAME_BASIS = ('event', 'basis', 'name')
PATH_SHIP_NAME_CAMPAIGN = ('event', 'campaign', 'name')
PATH_AUTHOR_LAST_NAME = ('citation', 'author', 'lastName')
PATH_AUTHOR_FIRST_NAME = ('citation', 'author', 'firstName')
PATH_DOI = ('citation', 'URI')
PATH_ABSTRACT = ('citation', 'title')
PATH_WEST_LONGITUDE = ('extent', 'geographic', 'westBoundLongitude')
PATH_EAST_LONGITUDE = ('extent', 'geographic', 'eastBoundLongitude')
PATH_SOUTH_LATITUDE = ('extent', 'geographic', 'southBoundLatitude')
PATH_NORTH_LATITUDE = ('extent', 'geographic', 'northBoundLatitude')
PATH_START_TIME = ('extent', 'temporal', 'minDateTime')
PATH_END_TIME = ('extent', 'temporal', 'maxDateTime')

TIME_FORMATS = ('%Y-%m-%dT%H:%M', '%Y-%m-%dT%H:%M:%S')
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def time_to_milliseconds(value_name: str, time_string: Optional[str]) -> int:
    """Convert a metadata time (UTC, ``YYYY-MM-DDThh:mm[:ss]``) to epoch milliseconds.

    Raises:
        InvalidLookupValueError: If the time is missing or unparseable.
    """
    if time_string:
        for time_format in TIME_FORMATS:
            try:
                parsed = datetime.strptime(time_string, time_format).replace(tzinfo=timezone.utc)
            except ValueError:
                continue
            return (parsed - EPOCH) // timedelta(milliseconds=1)

    raise InvalidLookupValueError(value_name, ValueError(f"Invalid time '{time_string}'"))


class PangaeaSource(DatasetSource):
    """
    Base for datasets published by PANGAEA.

    Data comes from the PANGAEA text-file download, metadata from the
    PangaVista web service as an XML document.
    """

    id_format = '<number>'
    id_descriptor = 'PANGAEA ID'
    ids_descriptor = 'PANGAEA IDs'
    id_pattern = '[0-9]+'

    def __init__(self, lookup: Optional[IntervalLookup] = None, timeout: int = DEFAULT_TIMEOUT):
        super().__init__(lookup, timeout)
        self.metadata_xml: Optional[ET.Element] = None
        self._namespace = ''

    @staticmethod
    def data_url(dataset_id: str) -> str:
        return PANGAEA_DATA_URL.format(dataset_id=dataset_id)

    def data_loader(self) -> BaseLoader:
        return HTTPLoader(self.data_url, timeout=self.timeout)

    def metadata_loader(self) -> BaseLoader:
        return PangaVistaLoader(timeout=self.timeout)

    def reset(self) -> None:
        super().reset()
        self.metadata_xml = None
        self._namespace = ''

    def preprocess_metadata(self, metadata: str) -> None:
        try:
            root = ET.fromstring(metadata)
        except ET.ParseError as e:
            raise ImporterError(f"Error while parsing metadata XML: {e}") from e

        if root.tag.startswith('{'):
            namespace, local_name = root.tag[1:].split('}', 1)
        else:
            namespace, local_name = '', root.tag
        if local_name != 'MetaData':
            raise ImporterError(f"Unexpected metadata root element '{local_name}'")
        if namespace and namespace != METADATA_NS:
            logger.warning(f"Metadata for {self.current_id} uses unexpected namespace {namespace}")

        self.metadata_xml = root
        self._namespace = f'{{{namespace}}}' if namespace else ''

    # ------------------------------------------------------------------
    # Metadata lookups
    # ------------------------------------------------------------------
    def find_text(self, *paths: Sequence[str]) -> Optional[str]:
        """
        Look up a value in the metadata.

        Each path is a sequence of element steps below the root; an element
        step may carry an attribute predicate such as
        ``reference[@relationType='Other version']``. Paths are tried in
        turn and the first non-blank (stripped) value wins.

        Returns:
            The value, or None if no path has one.
        """
        if self.metadata_xml is None:
            raise ImporterError("No metadata has been loaded")

        for path in paths:
            expression = '/'.join(self._namespace + step for step in path)
            value = self.metadata_xml.findtext(expression)
            if value is not None and value.strip():
                return value.strip()
        return None

    def find_float(self, value_name: str, *paths: Sequence[str]) -> float:
        """Numeric metadata value; a missing or blank value counts as zero"""
        value = self.find_text(*paths)
        if value is None:
            return 0.0
        try:
            return float(value)
        except ValueError as e:
            raise InvalidLookupValueError(value_name, e) from e

    def ship_name(self) -> Optional[str]:
        return self.find_text(PATH_SHIP_NAME_BASIS, PATH_SHIP_NAME_CAMPAIGN)

    def first_author(self) -> Optional[str]:
        """First author as ``Last, First``"""
        last_name = self.find_text(PATH_AUTHOR_LAST_NAME)
        first_name = self.find_text(PATH_AUTHOR_FIRST_NAME)
        if last_name is None or first_name is None:
            return None
        return f"{last_name}, {first_name}"

    def doi(self) -> Optional[str]:
        doi = self.find_text(PATH_DOI)
        if doi is not None and doi.startswith('doi:'):
            doi = doi[4:]
        return doi

    def doi_url(self) -> Optional[str]:
        doi = self.doi()
        return PANGAEA_DOI_URL.format(doi=doi) if doi else None

    def abstract(self) -> Optional[str]:
        return self.find_text(PATH_ABSTRACT)

    def west_longitude(self) -> float:
        return self.find_float('West Longitude', PATH_WEST_LONGITUDE)

    def east_longitude(self) -> float:
        return self.find_float('East Longitude', PATH_EAST_LONGITUDE)

    def south_latitude(self) -> float:
        return self.find_float('South Latitude', PATH_SOUTH_LATITUDE)

    def north_latitude(self) -> float:
        return self.find_float('North Latitude', PATH_NORTH_LATITUDE)

    def start_date_time(self) -> int:
        return time_to_milliseconds('Start Time', self.find_text(PATH_START_TIME))

    def end_date_time(self) -> int:
        return time_to_milliseconds('End Time', self.find_text(PATH_END_TIME))

    def start_date(self) -> date:
        """UTC calendar date of the first measurement"""
        return (EPOCH + timedelta(milliseconds=self.start_date_time())).date()

    def tag_resolvers(self) -> Dict[str, Callable[[], Optional[str]]]:
        return {
            'SHIP_NAME': self.ship_name,
            'FIRST_AUTHOR': self.first_author,
            'START_DATE_MS': lambda: str(self.start_date_time()),
            'END_DATE_MS': lambda: str(self.end_date_time()),
        }
