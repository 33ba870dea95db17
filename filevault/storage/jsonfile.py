from pathlib import Path
from typing import Any, Dict
import json
import os
import tempfile

from filevault.errors import StorageIOError


def load_json(path: Path, default: Dict[str, Any]) -> Dict[str, Any]:
    if not path.exists():
        return default
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except (OSError, ValueError) as exc:
        raise StorageIOError(f"could not read {path.name}: {exc}") from exc


def save_json(path: Path, payload: Dict[str, Any]) -> None:
    """Write payload next to `path` and atomically swap it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f"{path.stem}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
        Path(tmp).replace(path)
    except OSError as exc:
        raise StorageIOError(f"could not write {path.name}: {exc}") from exc
    finally:
        Path(tmp).unlink(missing_ok=True)
