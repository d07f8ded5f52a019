"""
Converter models.

A converter model is one template document for the downstream converter,
chosen by dataset source, model variant and output format. The template
lives at ``<templates_dir>/<source>/<identifier>_<format>.xml``.
"""

import os
from dataclasses import dataclass

from .errors import ConfigError


@dataclass(frozen=True)
class ConverterModel:
    templates_dir: str
    source_name: str
    identifier: str
    output_format: str

    def __post_init__(self):
        template_file = self.template_file
        if not os.path.exists(template_file):
            raise ConfigError(f"Model template {template_file}: Does not exist")
        if not os.path.isfile(template_file):
            raise ConfigError(f"Model template {template_file}: Is not a file")
        if not os.access(template_file, os.R_OK):
            raise ConfigError(f"Model template {template_file}: Cannot be accessed")

    @property
    def template_file(self) -> str:
        filename = f"{self.identifier}_{self.output_format}.xml"
        return os.path.join(self.templates_dir, self.source_name, filename)

    def read_template(self) -> str:
        with open(self.template_file, 'r', encoding='utf-8') as f:
            return f.read()

    def populated_template_file(self, cache_dir: str, dataset_id: str) -> str:
        filename = f"{dataset_id}_{self.identifier}_{self.output_format}_model.xml"
        return os.path.join(cache_dir, filename)

    def output_file(self, output_dir: str, local_cdi_id: str) -> str:
        return os.path.join(output_dir, f"{local_cdi_id}_{self.output_format.lower()}.txt")
