"""
Dataset source configurations for the CDI generator.

This module registers all the dataset sources the generator supports.
Adding a new source means writing a DatasetSource subclass (or reusing one
with different settings) and registering a factory for it below.
"""

import functools
import logging
import re
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional

from .errors import ImporterError, InvalidLookupValueError
from .lookups import IntervalLookup
from .loaders import DEFAULT_TIMEOUT
from .padding import ColumnPaddingSpec
from .processors import Column, column_index, first_data_line_number
from .registry import REGISTRY
from .sources import PangaeaSource


logger = logging.getLogger(__name__)

# SOCAT metadata paths
PATH_EXPOCODE = ('event', 'label')
PATH_SENSOR_DEPTH = ('extent', 'elevation', 'min')
PATH_DOCUMENTATION_URL = ("reference[@relationType='Other version']", 'URI')
PATH_COMMENT = ('comment',)

DEFAULT_SENSOR_DEPTH = '5'

QC_COMMENT_PREFIX = 'Cruise QC flag'
QC_COMMENT_LENGTH = 17

# SOCAT columns
COL_DATE_TIME = 'Date/Time'
COL_LATITUDE = 'Latitude'
COL_LONGITUDE = 'Longitude'
COL_SST = 'Temp [°C]'
COL_SALINITY = 'Sal'
COL_PREFERRED_FCO2 = 'fCO2water_SST_wet [µatm] (Recomputed after SOCAT (Pfeil...)'
COL_FALLBACK_FCO2 = 'fCO2water_SST_wet [µatm]'
COL_ATMOSPHERIC_PRESSURE = 'PPPP [hPa]'
COL_WOCE_FLAG = 'Flag [#]'
COL_WATER_DEPTH = 'Depth water [m]'

TEXT_COLUMNS = frozenset({COL_DATE_TIME, COL_WOCE_FLAG})

_MINUTE_TIMESTAMP = re.compile(r'\d{4}-\d{2}-\d{2}T\d{2}:\d{2}')
_SHIP_CODE_WITH_SUFFIX = re.compile(r'(.*)\d{4}[01]\d[0-3]\d-.*')
_SHIP_CODE = re.compile(r'(.*)\d{4}[01]\d[0-3]\d')


def socat_padding_specs() -> Mapping[str, Optional[ColumnPaddingSpec]]:
    """Padding for every column a SOCAT output file can contain.

    Date/Time and the WOCE flag are present with no padding so that they
    still count as known columns.
    """
    temp_and_sal = ColumnPaddingSpec(7, 3)
    fco2 = ColumnPaddingSpec(8, 3)

    return MappingProxyType({
        COL_DATE_TIME: None,
        COL_WOCE_FLAG: None,
        COL_LATITUDE: ColumnPaddingSpec(9, 5),
        COL_LONGITUDE: ColumnPaddingSpec(10, 5),
        COL_SST: temp_and_sal,
        COL_SALINITY: temp_and_sal,
        COL_ATMOSPHERIC_PRESSURE: ColumnPaddingSpec(9, 3),
        COL_PREFERRED_FCO2: fco2,
        COL_FALLBACK_FCO2: fco2,
        COL_WATER_DEPTH: ColumnPaddingSpec(6, 0),
    })


class SocatPangaeaSource(PangaeaSource):
    """
    SOCAT surface ocean CO2 cruises published through PANGAEA.

    Args:
        name: Registered source name, e.g. ``SOCATv3``.
        abstract_suffix: Sentence appended to the PANGAEA title to form the
            dataset abstract.
    """

    header_start = COL_DATE_TIME
    source_separator = '\t'
    output_separator = ';'
    output_formats = ('ODV',)

    def __init__(self, name: str, abstract_suffix: str,
                 lookup: Optional[IntervalLookup] = None, timeout: int = DEFAULT_TIMEOUT):
        self.name = name
        self.abstract_suffix = abstract_suffix
        super().__init__(lookup, timeout)

        self.padding_specs = socat_padding_specs()
        self.first_line_number: Optional[int] = None
        self.has_salinity = False
        self.has_atmospheric_pressure = False

    # ------------------------------------------------------------------
    # Column layout
    # ------------------------------------------------------------------
    def select_columns(self, column_names: List[str]) -> List[Column]:
        # Date/Time, Latitude and Longitude are always the first three
        if len(column_names) < 3:
            raise ImporterError(f"Column header has only {len(column_names)} columns")
        columns = [self._column(column_names[i], i) for i in range(3)]

        columns.append(self._required(column_names, COL_WATER_DEPTH, "water depth"))
        columns.append(self._required(column_names, COL_SST, "SST"))

        salinity = column_index(column_names, COL_SALINITY)
        if salinity is not None:
            columns.append(self._column(COL_SALINITY, salinity))

        fco2 = column_index(column_names, COL_PREFERRED_FCO2)
        if fco2 is not None:
            columns.append(self._column(COL_PREFERRED_FCO2, fco2))
        else:
            columns.append(self._required(column_names, COL_FALLBACK_FCO2, "fCO2"))

        pressure = column_index(column_names, COL_ATMOSPHERIC_PRESSURE)
        if pressure is not None:
            columns.append(self._column(COL_ATMOSPHERIC_PRESSURE, pressure))

        columns.append(self._required(column_names, COL_WOCE_FLAG, "WOCE Flag"))
        return columns

    def _required(self, column_names: List[str], name: str, description: str) -> Column:
        index = column_index(column_names, name)
        if index is None:
            raise ImporterError(f"Cannot find {description} column")
        return self._column(name, index)

    @staticmethod
    def _column(name: str, index: int) -> Column:
        return Column(name, index, numeric=name not in TEXT_COLUMNS)

    def column_padding_spec(self, column_name: str) -> Optional[ColumnPaddingSpec]:
        if column_name not in self.padding_specs:
            raise ImporterError(f"Unrecognised column name {column_name}")
        return self.padding_specs[column_name]

    def format_value(self, column: Column, value: str) -> str:
        # The converter needs seconds on every timestamp
        if column.name == COL_DATE_TIME and _MINUTE_TIMESTAMP.fullmatch(value):
            return value + ':00'
        return value

    # ------------------------------------------------------------------
    # Preprocessing
    # ------------------------------------------------------------------
    def reset(self) -> None:
        super().reset()
        self.first_line_number = None
        self.has_salinity = False
        self.has_atmospheric_pressure = False

    def preprocess_data(self, data: str) -> None:
        """Record the layout of the stored (reformatted) data file"""
        self.first_line_number = first_data_line_number(data, COL_DATE_TIME)

        header = next(line for line in data.splitlines() if line.startswith(COL_DATE_TIME))
        column_names = header.split(self.output_separator)
        self.has_salinity = COL_SALINITY in column_names
        self.has_atmospheric_pressure = COL_ATMOSPHERIC_PRESSURE in column_names

    def model_identifier(self) -> str:
        """One of Sal-Atm, Sal-NoAtm, NoSal-Atm, NoSal-NoAtm"""
        salinity = 'Sal' if self.has_salinity else 'NoSal'
        pressure = 'Atm' if self.has_atmospheric_pressure else 'NoAtm'
        return f"{salinity}-{pressure}"

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def expocode(self) -> Optional[str]:
        label = self.find_text(PATH_EXPOCODE)
        if label is None:
            return None
        return re.sub(r'-track$', '', label)

    def ship_code(self) -> Optional[str]:
        """EXPO code without its YYYYMMDD start date (and anything after it)"""
        expocode = self.expocode()
        if expocode is None:
            return None

        pattern = _SHIP_CODE_WITH_SUFFIX if '-' in expocode else _SHIP_CODE
        match = pattern.fullmatch(expocode)
        return match.group(1) if match else expocode

    def sensor_depth(self) -> str:
        return self.find_text(PATH_SENSOR_DEPTH) or DEFAULT_SENSOR_DEPTH

    def first_line(self) -> Optional[str]:
        if self.first_line_number is None:
            return None
        return str(self.first_line_number)

    def tag_resolvers(self) -> Dict[str, Callable[[], Optional[str]]]:
        resolvers = super().tag_resolvers()
        resolvers.update({
            'EXPOCODE': self.expocode,
            'SHIP_CODE': self.ship_code,
            'FIRST_LINE': self.first_line,
            'SENSOR_DEPTH': self.sensor_depth,
            'CSR_REFERENCE': self.csr_reference,
        })
        return resolvers

    def _require_expocode(self) -> str:
        expocode = self.expocode()
        if expocode is None:
            raise InvalidLookupValueError('EXPOCODE')
        return expocode

    # ------------------------------------------------------------------
    # Summary values
    # ------------------------------------------------------------------
    def local_cdi_id(self) -> str:
        return f"{self.name}_{self._require_expocode()}"

    def dataset_name(self) -> str:
        return self.name

    def dataset_id(self) -> str:
        return self._require_expocode()

    def cruise_name(self) -> str:
        return self._require_expocode()

    def platform_code(self) -> str:
        ship_code = self.ship_code()
        if ship_code is None:
            raise InvalidLookupValueError('SHIP_CODE')
        return ship_code

    def abstract(self) -> Optional[str]:
        title = super().abstract()
        if title is None:
            return None
        return f"{title} {self.abstract_suffix}"

    def documentation_url(self) -> Optional[str]:
        return self.find_text(PATH_DOCUMENTATION_URL)

    def qc_comment(self) -> str:
        comment = self.find_text(PATH_COMMENT)
        if comment is not None and comment.startswith(QC_COMMENT_PREFIX):
            return comment[:QC_COMMENT_LENGTH]
        return ''

    def csr_reference(self) -> Optional[str]:
        """Cruise Summary Report covering this cruise's ship and start date"""
        if self.lookup is None:
            return None
        return self.lookup.query(self.platform_code(), self.start_date())


SOCAT_V3_ABSTRACT = (
    "Part of SOCAT Version 3 - A multi-decade record of high-quality surface ocean "
    "fCO2 data, doi:10.5194/essd-8-383-2016 (http://www.socat.info)"
)

SOCAT_V4_ABSTRACT = (
    "Part of SOCAT Version 4 - A multi-decade record of high-quality surface ocean "
    "fCO2 data (http://www.socat.info)"
)


SOURCES: Dict[str, Callable[..., SocatPangaeaSource]] = {
    'SOCATv3': functools.partial(SocatPangaeaSource, 'SOCATv3', SOCAT_V3_ABSTRACT),
    'SOCATv4': functools.partial(SocatPangaeaSource, 'SOCATv4', SOCAT_V4_ABSTRACT),
}


def register_all_sources(registry=REGISTRY):
    """Register all dataset sources with the registry"""
    for name, factory in SOURCES.items():
        if name not in registry:
            registry.register(name, factory)

    logger.debug(f"Registered {len(SOURCES)} dataset sources")


# Auto-register when module is imported
register_all_sources()
