# cdi_pipeline/utils/file_utils.py
import json
import os
import tempfile
import logging

logger = logging.getLogger(__name__)

def write_text_atomic(text: str, filepath: str) -> None:
    """Write text to *filepath* via a temporary file in the same directory.

    A reader never sees a half-written file: either the old state (usually
    no file at all) or the complete new contents.
    """
    directory = os.path.dirname(os.path.abspath(filepath))
    os.makedirs(directory, exist_ok=True)

    with tempfile.NamedTemporaryFile('w', encoding='utf-8', delete=False, dir=directory) as tmp_file:
        tmp_file.write(text)
        tmp_path = tmp_file.name

    try:
        os.replace(tmp_path, filepath)
    except OSError:
        os.remove(tmp_path)
        raise

def json_to_file(data: dict, filepath: str) -> bool:
    """Saves dictionary data to a JSON file."""
    try:
        os.makedirs(os.path.dirname(os.path.abspath(filepath)), exist_ok=True)
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, default=str)
        logger.info(f"Successfully saved JSON data to {filepath}")
        return True
    except (OSError, TypeError) as e:
        logger.error(f"Error saving JSON to file {filepath}: {e}", exc_info=True)
        return False
