import pytest

from cdi_pipeline.loaders import BaseLoader, FetchResult
from cdi_pipeline.processors import Column


SOCAT_HEADER = (
    "Date/Time\tLatitude\tLongitude\tDepth water [m]\tTemp [°C]\tSal\t"
    "fCO2water_SST_wet [µatm]\tPPPP [hPa]\tFlag [#]"
)

SOCAT_TEXT = "\n".join([
    "/* DATA DESCRIPTION:",
    "Citation:\tOlsen, A (2015): Surface underway measurements",
    "*/",
    SOCAT_HEADER,
    "2015-08-17T10:00\t60.12345\t-5.5\t3.2\t10.1234\t35.1\t380.5\t1013.25\t2",
    "2015-08-17T10:05:30\t60.2\t-5.49999\t\t10.0005\t35.0\t381\t1013.3\t2",
    "",
])

METADATA_XML = """<?xml version="1.0" encoding="UTF-8"?>
<md:MetaData xmlns:md="http://www.pangaea.de/MetaData">
  <md:citation>
    <md:author>
      <md:lastName>Olsen</md:lastName>
      <md:firstName>Are</md:firstName>
    </md:author>
    <md:title>Surface underway measurements of pCO2 during cruise 06AQ20150817</md:title>
    <md:URI>doi:10.1594/PANGAEA.849221</md:URI>
  </md:citation>
  <md:reference relationType="Other version">
    <md:URI>https://www.socat.info/cruise/06AQ20150817</md:URI>
  </md:reference>
  <md:extent>
    <md:geographic>
      <md:westBoundLongitude>-10.5</md:westBoundLongitude>
      <md:eastBoundLongitude>5.25</md:eastBoundLongitude>
      <md:southBoundLatitude>55.0</md:southBoundLatitude>
      <md:northBoundLatitude>70.125</md:northBoundLatitude>
    </md:geographic>
    <md:temporal>
      <md:minDateTime>2015-08-17T10:00</md:minDateTime>
      <md:maxDateTime>2015-09-01T12:30</md:maxDateTime>
    </md:temporal>
    <md:elevation>
      <md:min>6</md:min>
    </md:elevation>
  </md:extent>
  <md:event>
    <md:label>06AQ20150817-track</md:label>
    <md:basis>
      <md:name>Polarstern</md:name>
    </md:basis>
  </md:event>
  <md:comment>Cruise QC flag: A (see further details)</md:comment>
</md:MetaData>
"""


class ScriptedLoader(BaseLoader):
    """Returns the given results in order, repeating the last one"""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0
        self.renewals = 0

    def fetch(self, dataset_id):
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result

    def renew_session(self):
        self.renewals += 1


class StubSource:
    """Minimal source: keeps every column and pads nothing"""

    name = 'stub'
    header_start = 'Date/Time'
    source_separator = '\t'
    output_separator = ';'

    def __init__(self):
        self.preprocessed = []

    def select_columns(self, column_names):
        return [Column(name, i, numeric=False) for i, name in enumerate(column_names)]

    def column_padding_spec(self, column_name):
        return None

    def format_value(self, column, value):
        return value

    def preprocess(self, dataset_id, data, metadata):
        self.preprocessed.append((dataset_id, data, metadata))

    def data_loader(self):
        raise AssertionError("loaders are always injected in tests")

    metadata_loader = data_loader


@pytest.fixture
def socat_text():
    return SOCAT_TEXT


@pytest.fixture
def metadata_xml():
    return METADATA_XML


@pytest.fixture
def ok_data_loader():
    return ScriptedLoader(FetchResult.ok(SOCAT_TEXT))


@pytest.fixture
def ok_metadata_loader():
    return ScriptedLoader(FetchResult.ok(METADATA_XML))
