"""Atomic JSON persistence for the activation states."""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from pyexhaust.models.state import StateDocument

_logger = logging.getLogger(__name__)


def read_document(path: Path) -> StateDocument | None:
    """Load the state document.

    A missing file returns ``None``. An unreadable or invalid file is
    logged and also returns ``None`` so the controller starts empty.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as exc:
        _logger.warning("Could not read state file %s: %s", path, exc)
        return None

    try:
        return StateDocument.model_validate_json(text)
    except ValidationError as exc:
        _logger.warning("Ignoring corrupt state file %s: %s", path, exc.errors(include_url=False)[:3])
        return None


def write_document(path: Path, document: StateDocument) -> None:
    """Write *document* to *path* atomically.

    The JSON is written to a temporary file in the same directory, flushed
    to disk and renamed over the target, so readers only ever see a
    complete document.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = document.model_dump_json(by_alias=True, indent=2)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise
