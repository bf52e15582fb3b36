"""
Dataset Loading Utilities

Reads the financial dataset JSON document:

    {
      "<leaf key>":     [{"name": ..., <numeric fields>...}, ...],
      "<category key>": [{"name": ..., "type": ..., "<year>": ...}, ...]
    }

from a file path or an uploaded file.
"""

import asyncio
import json
from typing import Any, Dict, List, Tuple
from fastapi import UploadFile

from services.graph_builder import FlowGraphError

DEFAULT_LEAF_KEY = "jmu-athletics"
DEFAULT_CATEGORY_KEY = "jmu-revenues"

Records = List[Dict[str, Any]]


class DatasetFormatError(FlowGraphError):
    """Raised when the dataset document does not have the expected shape"""
    pass


def parse_dataset(
    document: Any,
    leaf_key: str = DEFAULT_LEAF_KEY,
    category_key: str = DEFAULT_CATEGORY_KEY
) -> Tuple[Records, Records]:
    """
    Split a parsed dataset document into leaf and category records.

    Raises:
        DatasetFormatError: If a key is missing or does not hold a list of objects
    """
    if not isinstance(document, dict):
        raise DatasetFormatError("Dataset must be a JSON object")

    collections = []
    for key in (leaf_key, category_key):
        if key not in document:
            raise DatasetFormatError(f"Dataset is missing the '{key}' collection")
        records = document[key]
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise DatasetFormatError(f"Dataset collection '{key}' must be a list of objects")
        collections.append(records)

    return collections[0], collections[1]


def _read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


async def load_dataset_file(
    path: str,
    leaf_key: str = DEFAULT_LEAF_KEY,
    category_key: str = DEFAULT_CATEGORY_KEY
) -> Tuple[Records, Records]:
    """
    Load a dataset from disk without blocking the event loop.

    Raises:
        FileNotFoundError: If the file does not exist
        DatasetFormatError: If the file is not valid JSON or has the wrong shape
    """
    try:
        document = await asyncio.to_thread(_read_json, path)
    except json.JSONDecodeError as e:
        raise DatasetFormatError(f"Dataset file '{path}' is not valid JSON: {e}") from e
    return parse_dataset(document, leaf_key, category_key)


async def load_dataset_upload(
    file: UploadFile,
    leaf_key: str = DEFAULT_LEAF_KEY,
    category_key: str = DEFAULT_CATEGORY_KEY
) -> Tuple[Records, Records]:
    """Load a dataset from an uploaded JSON file."""
    content = await file.read()
    try:
        document = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DatasetFormatError(f"Uploaded file '{file.filename}' is not valid JSON: {e}") from e
    return parse_dataset(document, leaf_key, category_key)
