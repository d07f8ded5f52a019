#!/usr/bin/env python3
"""
CDI Generator Runner

Command-line entry point that runs a batch of dataset IDs through one of
the registered dataset sources and writes a JSON report of the outcome.
"""

import os
import sys
import argparse
import logging
from typing import List, Optional

import requests

from cdi_pipeline import Generator, GeneratorConfig, IntervalLookup, registry
from cdi_pipeline.errors import CdiError, ConfigError
from cdi_pipeline.utils.file_utils import json_to_file

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def read_ids(ids: List[str], ids_file: Optional[str]) -> List[str]:
    """Combine IDs from the command line and an IDs file (one per line, # comments)"""
    dataset_ids = list(ids)
    if ids_file:
        with open(ids_file, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.split('#', 1)[0].strip()
                if line:
                    dataset_ids.append(line)
    return dataset_ids


def default_report_path(config: GeneratorConfig, source_name: str) -> str:
    return os.path.join(config.output_dir, f"{source_name}_report.json")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate CDI inputs for published cruise datasets")
    parser.add_argument('ids', nargs='*', metavar='ID', help="Dataset IDs to process")
    parser.add_argument('--source', required=True,
                        help=f"Dataset source ({', '.join(registry.list_sources())})")
    parser.add_argument('--ids-file', help="File with one dataset ID per line")
    parser.add_argument('--report', help="Where to write the JSON batch report")
    parser.add_argument('--verbose', action='store_true', help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = GeneratorConfig.from_env()
        if not config.source_enabled(args.source):
            raise ConfigError(f"Dataset source '{args.source}' is not enabled in CDI_SOURCES")

        lookup = None
        if config.csr_url:
            lookup = IntervalLookup.from_url(config.csr_url, timeout=config.http_timeout)
        else:
            logger.warning("CDI_CSR_URL is not set; CSR references will be empty")

        source = registry.create(args.source, lookup=lookup, timeout=config.http_timeout)
        dataset_ids = read_ids(args.ids, args.ids_file)
    except (CdiError, OSError, requests.RequestException) as e:
        logger.error(f"Setup failed: {e}")
        return 1

    if not dataset_ids:
        logger.error(f"No {source.ids_descriptor} given")
        return 1

    generator = Generator(source, config)
    report = generator.run(dataset_ids)

    report_path = args.report or default_report_path(config, source.name)
    if not json_to_file(report.to_dict(), report_path):
        return 1

    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
