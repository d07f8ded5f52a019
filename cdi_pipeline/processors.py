"""
Table reformatting for the downstream converter.

Each processor is responsible for transforming a dataset's raw tabular text
into the fixed-width layout the converter needs: pick the columns the
dataset source asks for, pad every value with that column's padding spec,
and join the result with the output separator.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, TYPE_CHECKING

from .errors import ImporterError

if TYPE_CHECKING:
    from .sources import DatasetSource


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Column:
    """A column of the source table that is carried into the output"""
    name: str
    index: int
    numeric: bool = True


def find_header_line(lines: Sequence[str], header_start: str) -> int:
    """Return the zero-based index of the column header line.

    Raises:
        ImporterError: If no line starts with *header_start*.
    """
    for i, line in enumerate(lines):
        if line.startswith(header_start):
            return i
    raise ImporterError(f"Cannot find column header starting with '{header_start}'")


def first_data_line_number(text: str, header_start: str) -> int:
    """One-based line number of the first data line in *text*"""
    # +1 for the line after the header, +1 because line numbers start at 1
    return find_header_line(text.splitlines(), header_start) + 2


class TableProcessor:
    """Reformats tabular text using the rules of a dataset source"""

    def process(self, source: 'DatasetSource', text: str) -> str:
        """Reformat *text* into the source's fixed-width output layout.

        Lines before the column header are dropped. The output is the
        header line (selected column names) followed by one line per data
        record.

        Raises:
            ImporterError: If the header is missing, a required column is
                missing, or a data line is too short.
            PaddingError: If a value cannot be padded.
        """
        lines = [line.rstrip('\r') for line in text.splitlines()]
        header_index = find_header_line(lines, source.header_start)

        column_names = lines[header_index].split(source.source_separator)
        columns = source.select_columns(column_names)
        if not columns:
            raise ImporterError(f"{source.name}: no columns selected for output")

        specs = [source.column_padding_spec(column.name) for column in columns]
        separator = source.output_separator

        output: List[str] = [separator.join(column.name for column in columns)]
        last_index = max(column.index for column in columns)

        for line_number, line in enumerate(lines[header_index + 1:], start=header_index + 2):
            if not line.strip():
                continue

            fields = line.split(source.source_separator)
            if len(fields) <= last_index:
                raise ImporterError(
                    f"Line {line_number} has {len(fields)} fields, "
                    f"expected at least {last_index + 1}"
                )

            output.append(separator.join(
                self._format_field(source, column, spec, fields[column.index])
                for column, spec in zip(columns, specs)
            ))

        logger.debug(f"Reformatted {len(output) - 1} data lines for {source.name}")
        return '\n'.join(output) + '\n'

    @staticmethod
    def _format_field(source: 'DatasetSource', column: Column, spec, value: str) -> str:
        value = source.format_value(column, value.strip())
        if spec is None:
            return value
        return spec.pad(value, column.numeric)


def column_index(column_names: Sequence[str], name: str) -> Optional[int]:
    """Index of *name* in *column_names*, or None when it is absent"""
    try:
        return list(column_names).index(name)
    except ValueError:
        return None
