"""
CDI generator batch loop.

The Generator runs a list of dataset IDs through one dataset source, in
order, one at a time: retrieve, populate each converter model template,
hand the files to the converter, and collect a summary record. A failure
for one ID is logged and recorded, and the batch moves on to the next ID.
"""

import os
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, Optional

from .cache import DATA, PayloadCache
from .config import GeneratorConfig
from .errors import CdiError, GeneratorError
from .models import ConverterModel
from .pipeline import ProgressCallback, RetrievalPipeline
from .sources import DatasetSource
from .utils.file_utils import write_text_atomic


logger = logging.getLogger(__name__)

Converter = Callable[[ConverterModel, str, str, str], bool]
SummarySink = Callable[[Dict[str, Any]], None]

BYTES_PER_MB = Decimal(1048576)


@dataclass
class BatchReport:
    """IDs that made it through the generator, and why the others did not"""
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    summaries: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'succeeded': list(self.succeeded),
            'failed': dict(self.failed),
            'summaries': list(self.summaries),
        }


class Generator:
    """
    Runs batches of dataset IDs through a dataset source.

    Args:
        source: The dataset source to use.
        config: Run settings.
        pipeline: Retrieval pipeline; built from *config* when not given.
        converter: Called as ``converter(model, data_file, template_file,
            output_file)`` for each model; returns False when conversion
            failed. When None, conversion is skipped.
        summary_sink: Receives each summary record.
        progress: Receives progress messages for the operator.
    """

    def __init__(self, source: DatasetSource, config: GeneratorConfig,
                 pipeline: Optional[RetrievalPipeline] = None,
                 converter: Optional[Converter] = None,
                 summary_sink: Optional[SummarySink] = None,
                 progress: Optional[ProgressCallback] = None):
        self.source = source
        self.config = config
        self.progress = progress or logger.info
        self.converter = converter
        self.summary_sink = summary_sink

        if pipeline is None:
            pipeline = RetrievalPipeline(
                source,
                PayloadCache(config.cache_dir),
                retries=config.network_retries,
                retry_wait=config.retry_wait,
                progress=self.progress,
            )
        self.pipeline = pipeline
        source.attach(pipeline)

    def run(self, dataset_ids: Iterable[str]) -> BatchReport:
        """Process every ID in order and report the outcome of each"""
        report = BatchReport()
        dataset_ids = list(dataset_ids)

        for count, dataset_id in enumerate(dataset_ids, start=1):
            self.progress(f"Processing {self.source.id_descriptor} {dataset_id} ({count} of {len(dataset_ids)})")
            try:
                summaries = self.process(dataset_id)
            except (CdiError, OSError) as e:
                logger.warning(f"Error while processing '{dataset_id}': {e}")
                report.failed[dataset_id] = str(e)
            except Exception as e:
                logger.error(f"Unexpected error while processing '{dataset_id}'", exc_info=True)
                report.failed[dataset_id] = f"{type(e).__name__}: {e}"
            else:
                report.succeeded.append(dataset_id)
                report.summaries.extend(summaries)

        self.progress(
            f"Processing complete. {len(report.succeeded)} succeeded, "
            f"{len(report.failed)} failed. See log for full list."
        )
        logger.info(f"SUCCEEDED IDS: {', '.join(report.succeeded) or 'none'}")
        logger.info(f"FAILED IDS: {', '.join(report.failed) or 'none'}")
        return report

    def process(self, dataset_id: str) -> List[Dict[str, Any]]:
        """
        Run one dataset ID through every converter model.

        Returns:
            The summary record for each model.

        Raises:
            CdiError: If the ID is invalid, retrieval fails or any model fails.
        """
        if not self.source.validate_id_format(dataset_id):
            raise GeneratorError(
                f"Invalid {self.source.id_descriptor} '{dataset_id}', "
                f"expected {self.source.id_format}"
            )

        result = self.pipeline.retrieve(dataset_id)
        if not result.success:
            raise GeneratorError(result.reason or f"Could not retrieve {dataset_id}")

        models = self.source.models(self.config.templates_dir)
        data_file = self.pipeline.cache.path(dataset_id, DATA)
        local_cdi_id = self.source.local_cdi_id()
        summaries = []

        for count, model in enumerate(models, start=1):
            self.progress(f"Generating model {count} of {len(models)}")

            populated = self.source.populate_template(model.read_template())
            template_file = model.populated_template_file(self.config.cache_dir, dataset_id)
            write_text_atomic(populated, template_file)

            output_file = model.output_file(self.config.output_dir, local_cdi_id)
            if self.converter is not None:
                self.progress(f"Running converter (model {count} of {len(models)})")
                if not self.converter(model, data_file, template_file, output_file):
                    raise GeneratorError(f"Converter failed for {dataset_id} ({model.output_format})")

            summary = self.build_summary(output_file)
            if self.summary_sink is not None:
                self.summary_sink(summary)
            summaries.append(summary)

        return summaries

    def build_summary(self, output_file: str) -> Dict[str, Any]:
        """Flat record of the current dataset's summary values"""
        source = self.source
        return {
            'local_cdi_id': source.local_cdi_id(),
            'dataset_name': source.dataset_name(),
            'dataset_id': source.dataset_id(),
            'doi': source.doi(),
            'doi_url': source.doi_url(),
            'abstract': source.abstract(),
            'cruise_name': source.cruise_name(),
            'platform_code': source.platform_code(),
            'start_date': source.start_date().isoformat(),
            'west_longitude': source.west_longitude(),
            'east_longitude': source.east_longitude(),
            'south_latitude': source.south_latitude(),
            'north_latitude': source.north_latitude(),
            'start_date_time': source.start_date_time(),
            'end_date_time': source.end_date_time(),
            'documentation_url': source.documentation_url(),
            'qc_comment': source.qc_comment(),
            'csr_reference': source.csr_reference(),
            'distribution_data_size': distribution_data_size(output_file),
        }


def distribution_data_size(path: str) -> Optional[str]:
    """Size of *path* in MB to two decimal places, or None if it does not exist"""
    if not os.path.isfile(path):
        return None
    size = Decimal(os.path.getsize(path)) / BYTES_PER_MB
    return str(size.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))
