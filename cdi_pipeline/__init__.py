"""
CDI Generator pipeline

Builds Common Data Index (CDI) inputs from published cruise datasets:
- Cached, retried retrieval of dataset data and metadata
- Fixed-width reformatting of tabular data for the converter
- Template population from dataset metadata
- CSR reference lookup by ship and date
"""

from .config import GeneratorConfig
from .generator import BatchReport, Generator
from .lookups import IntervalEntry, IntervalLookup
from .padding import ColumnPaddingSpec, MISSING_VALUE
from .pipeline import RetrievalPipeline, RetrievalResult
from .sources import DatasetSource
from .template import populate

# Import data sources to register them to the singleton REGISTRY
from . import data_sources

# Use the singleton registry that data_sources populated
from .registry import REGISTRY as registry

__all__ = [
    'BatchReport', 'ColumnPaddingSpec', 'DatasetSource', 'Generator', 'GeneratorConfig',
    'IntervalEntry', 'IntervalLookup', 'MISSING_VALUE', 'RetrievalPipeline',
    'RetrievalResult', 'populate', 'registry',
]
