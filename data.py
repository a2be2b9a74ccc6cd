# data.py
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)

def load_json_data(json_file: Path, default: Any) -> Any:
    """Loads JSON data from a file.

    Args:
        json_file (Path): Path to the JSON file.
        default: Value returned when the file is missing, unreadable or corrupt.

    Returns:
        The decoded JSON document, or ``default``.
    """
    try:
        with json_file.open("r", encoding="utf-8") as file:
            return json.load(file)
    except FileNotFoundError:
        logger.info("JSON file not found: %s. Starting empty.", json_file)
    except json.JSONDecodeError as err:
        logger.warning("Error decoding JSON data in %s: %s. Starting empty.", json_file, err)
    except OSError as err:
        logger.warning("Could not read %s: %s. Starting empty.", json_file, err)
    return default

def save_json_data(data: Any, json_file: Path) -> bool:
    """Saves data to a JSON file, replacing it atomically.

    Args:
        data: JSON-serializable document to save.
        json_file (Path): Path to the JSON file.

    Returns:
        bool: True when the file was written.
    """
    tmp_file = json_file.with_name(json_file.name + ".tmp")
    try:
        json_file.parent.mkdir(parents=True, exist_ok=True)
        with tmp_file.open("w", encoding="utf-8") as file:
            json.dump(data, file, indent=2)
        os.replace(tmp_file, json_file)
        return True
    except OSError as err:
        logger.error("File system error while saving JSON data to %s: %s", json_file, err)
    except (TypeError, ValueError) as err:
        logger.error("Could not serialize JSON data for %s: %s", json_file, err)
    return False


class JsonRepository:
    """A whole-document JSON file: read in full, rewritten in full."""

    def __init__(self, path: Path, default_factory: Callable[[], Any]):
        self.path = Path(path)
        self.default_factory = default_factory

    def load(self) -> Any:
        data = load_json_data(self.path, None)
        expected = type(self.default_factory())
        if not isinstance(data, expected):
            if data is not None:
                logger.warning(f"Ignoring {self.path}: expected {expected.__name__}, got {type(data).__name__}")
            return self.default_factory()
        return data

    def save(self, data: Any) -> bool:
        return save_json_data(data, self.path)
