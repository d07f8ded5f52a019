"""
Template population.

Templates are plain text with tags wrapped in a two-character marker, e.g.
``%%SHIP_NAME%%``. Each tag is replaced by whatever the resolver returns for
the (trimmed) tag name. There is no escaping and no nesting.
"""

import logging
from typing import Callable, List, Optional

from .errors import MissingValueError, TemplateError


logger = logging.getLogger(__name__)

TAG_MARKER = '%%'

TagResolver = Callable[[str], Optional[str]]


def populate(template: str, resolve: TagResolver, marker: str = TAG_MARKER) -> str:
    """
    Replace every tag in *template* with its resolved value.

    Args:
        template: The template document.
        resolve: Called with each trimmed tag name. Returns the value, or
            None when there is no value.
        marker: The tag delimiter.

    Returns:
        A new document with all tags replaced.

    Raises:
        TemplateError: For an empty tag name or an unterminated tag.
        MissingValueError: When a tag resolves to None or to a blank string.
    """
    if not marker:
        raise ValueError("Tag marker cannot be empty")

    output: List[str] = []
    position = 0
    tag_count = 0

    while True:
        # Outside a tag
        tag_start = template.find(marker, position)
        if tag_start == -1:
            output.append(template[position:])
            break
        output.append(template[position:tag_start])

        # Inside a tag
        name_start = tag_start + len(marker)
        tag_end = template.find(marker, name_start)
        if tag_end == -1:
            raise TemplateError(f"Unterminated tag starting at offset {tag_start}")

        tag_name = template[name_start:tag_end].strip()
        if not tag_name:
            raise TemplateError(f"Empty tag name at offset {tag_start}")

        value = resolve(tag_name)
        if value is None or not str(value).strip():
            raise MissingValueError(tag_name)

        output.append(str(value))
        tag_count += 1
        position = tag_end + len(marker)

    logger.debug(f"Populated {tag_count} template tags")
    return ''.join(output)
