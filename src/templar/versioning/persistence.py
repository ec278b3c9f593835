"""Persistence backends for per-template version and migration lists.

The engine only needs a logical contract: read and atomically replace the
full list of versions (or migrations) for one template. ``YamlPersistence``
implements it with one YAML file per template and record kind:

    <data_dir>/<template_id>.versions.yaml
    <data_dir>/<template_id>.migrations.yaml

Every write happens under a per-template cross-process lock, goes to a
temporary file first, and is renamed into place. Any failure surfaces as
``PersistenceFailure`` and leaves the previous file intact.
"""

import copy
import logging
import os
import re
import threading
from pathlib import Path
from typing import Any, Protocol

import yaml

from templar.file_lock_manager import LockCancelledError, LockTimeoutError, acquire_file_lock
from templar.versioning.errors import InvalidTemplateId, PersistenceFailure

logger = logging.getLogger(__name__)

TEMPLATE_ID_PATTERN = re.compile(r"^[A-Za-z0-9@][A-Za-z0-9._@-]*$")
MAX_TEMPLATE_ID_LENGTH = 200

VERSIONS = "versions"
MIGRATIONS = "migrations"


def validate_template_id(template_id: str) -> str:
    """Validate a template id so it is safe as a file name.

    Raises:
        InvalidTemplateId: If the id is empty, too long, or contains path characters
    """
    if (
        not isinstance(template_id, str)
        or not template_id
        or len(template_id) > MAX_TEMPLATE_ID_LENGTH
        or not TEMPLATE_ID_PATTERN.match(template_id)
        or ".." in template_id
    ):
        raise InvalidTemplateId(
            f"Invalid template id: {template_id!r}. Use letters, digits, '.', '_', '-' or '@'",
            template_id=str(template_id),
        )
    return template_id


class PersistenceBackend(Protocol):
    def load(self, template_id: str, kind: str) -> list[dict[str, Any]]: ...

    def save(
        self,
        template_id: str,
        kind: str,
        records: list[dict[str, Any]],
        cancel_event: threading.Event | None = None,
    ) -> None: ...

    def template_ids(self) -> set[str]: ...


class InMemoryPersistence:
    """Backend keeping serialized lists in a dict (no disk I/O)."""

    def __init__(self):
        self._data: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def load(self, template_id: str, kind: str) -> list[dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._data.get((template_id, kind), []))

    def save(
        self,
        template_id: str,
        kind: str,
        records: list[dict[str, Any]],
        cancel_event: threading.Event | None = None,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise PersistenceFailure(
                f"Write of {kind} for {template_id} cancelled", template_id=template_id
            )
        with self._lock:
            self._data[(template_id, kind)] = copy.deepcopy(records)

    def template_ids(self) -> set[str]:
        with self._lock:
            return {template_id for template_id, kind in self._data if kind == VERSIONS}


class YamlPersistence:
    """YAML file backend with atomic, lock-bounded writes."""

    def __init__(self, data_dir: Path, lock_timeout: float = 5.0):
        """Initialize backend.

        Args:
            data_dir: Directory holding the per-template YAML files
            lock_timeout: Seconds to wait for the per-template write lock
        """
        self.data_dir = Path(data_dir).expanduser()
        self.lock_timeout = lock_timeout

    def _path(self, template_id: str, kind: str) -> Path:
        return self.data_dir / f"{validate_template_id(template_id)}.{kind}.yaml"

    def _lock_path(self, template_id: str) -> Path:
        return self.data_dir / ".locks" / f"{template_id}.lock"

    def load(self, template_id: str, kind: str) -> list[dict[str, Any]]:
        """Load the serialized list for a template.

        Returns:
            List of record dictionaries (empty when the file does not exist)

        Raises:
            PersistenceFailure: If the file exists but cannot be read or parsed
        """
        path = self._path(template_id, kind)
        if not path.exists():
            return []

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise PersistenceFailure(
                f"Failed to load {kind} for {template_id} from {path}: {e}",
                template_id=template_id,
            ) from e

        if data is None:
            return []
        if not isinstance(data, list):
            raise PersistenceFailure(
                f"Corrupt {kind} file for {template_id}: expected a list, got {type(data).__name__}",
                template_id=template_id,
            )
        logger.debug(f"Loaded {len(data)} {kind} for {template_id} from {path}")
        return data

    def save(
        self,
        template_id: str,
        kind: str,
        records: list[dict[str, Any]],
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Atomically replace the serialized list for a template.

        Raises:
            PersistenceFailure: On lock timeout, cancellation, or I/O errors
        """
        path = self._path(template_id, kind)
        temp_path = path.with_suffix(".yaml.tmp")

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with acquire_file_lock(
                self._lock_path(template_id),
                timeout=self.lock_timeout,
                operation=f"persist {kind} for {template_id}",
                cancel_event=cancel_event,
            ):
                with open(temp_path, "w") as f:
                    yaml.safe_dump(records, f, sort_keys=False, default_flow_style=False)
                os.chmod(temp_path, 0o600)
                temp_path.replace(path)
        except (OSError, yaml.YAMLError, LockTimeoutError, LockCancelledError) as e:
            if temp_path.exists():
                temp_path.unlink()
            raise PersistenceFailure(
                f"Failed to persist {kind} for {template_id}: {e}", template_id=template_id
            ) from e

        logger.debug(f"Saved {len(records)} {kind} for {template_id} to {path}")

    def template_ids(self) -> set[str]:
        if not self.data_dir.exists():
            return set()
        suffix = f".{VERSIONS}.yaml"
        return {p.name[: -len(suffix)] for p in self.data_dir.glob(f"*{suffix}")}


__all__ = [
    "MIGRATIONS",
    "VERSIONS",
    "InMemoryPersistence",
    "PersistenceBackend",
    "YamlPersistence",
    "validate_template_id",
]
