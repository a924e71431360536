import json
import logging
from pathlib import Path
from typing import List, Union

from pydantic import ValidationError

from schemabind.core.config import settings
from schemabind.core.exceptions import SchemaParseError
from schemabind.core.schemas import SchemaDescriptor

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# LOADER MODULE
# Purpose: read a directory of schema documents into schema descriptors.
# Files are taken in name order, so base models go in files that sort first.
# -----------------------------------------------------------------------------


def load_schema_file(path: Path) -> SchemaDescriptor:
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as error:
        raise SchemaParseError(path, str(error)) from error

    try:
        return SchemaDescriptor.model_validate(document)
    except ValidationError as error:
        raise SchemaParseError(path, str(error)) from error


def load_schemas(directory: Union[str, Path]) -> List[SchemaDescriptor]:
    """
    Load every schema document in `directory`.

    Args:
        directory: Folder holding one <Model>.json document per model.

    Returns:
        Schema descriptors, one per document, ordered by file name.

    Raises:
        OSError: The directory cannot be listed or a file cannot be read.
        SchemaParseError: A document is not valid JSON or not a descriptor.
    """
    directory = Path(directory)
    files = sorted(
        path
        for path in directory.iterdir()
        if path.suffix == settings.SCHEMA_SUFFIX and path.is_file()
    )
    schemas = [load_schema_file(path) for path in files]
    logger.info(f"Loaded {len(schemas)} schema documents from {directory}")
    return schemas
