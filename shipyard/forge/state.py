"""
Release storage.

Stores keep every Release of every (project, workspace, stack) triple and hand
out revisions. A revision is reserved before anything is written for it, and a
reservation is never handed out twice. ``create_release()`` is the single
atomic allocate-and-create step; ``allocate_revision()`` reserves a revision
that a later ``save_release()`` fills in.

Two stores are provided:
- InMemoryReleaseStore for tests and embedding
- FileReleaseStore, which keeps one joblib record per Release on disk
"""

import joblib
import logging
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

from ..errors import (
    InvalidTransitionError,
    ReleaseNotFoundError,
    RevisionConflictError,
    StoreError,
)
from ..lifecycle import new_release
from ..models import Release

logger = logging.getLogger(__name__)

ReleaseKey = Tuple[str, str, str]


class ReleaseStore(ABC):
    """
    Persistence boundary for Releases.

    Features:
    - Atomic revision reservation per (project, workspace, stack)
    - Thread-safe operations
    - Terminal Releases are immutable once stored
    """

    def __init__(self):
        self._lock = threading.RLock()

    # =========================================================================
    # Backend hooks
    # =========================================================================

    @abstractmethod
    def _reserve_revision(self, key: ReleaseKey) -> int:
        """Reserve and return the next unused revision. Called with the lock held."""

    @abstractmethod
    def _is_reserved(self, key: ReleaseKey, revision: int) -> bool:
        """True if the revision is reserved and has no record yet."""

    @abstractmethod
    def _drop_reservation(self, key: ReleaseKey, revision: int) -> None:
        """Forget a reservation once its record exists."""

    @abstractmethod
    def _insert(self, key: ReleaseKey, revision: int, record: Dict[str, Any]) -> None:
        """Persist a record for a new revision; fail if the revision exists."""

    @abstractmethod
    def _replace(self, key: ReleaseKey, revision: int, record: Dict[str, Any]) -> None:
        """Overwrite the record of an existing revision."""

    @abstractmethod
    def _load(self, key: ReleaseKey, revision: int) -> Optional[Dict[str, Any]]:
        """Load the record of a revision, or None."""

    @abstractmethod
    def _revisions(self, key: ReleaseKey) -> List[int]:
        """Stored revisions of a triple in ascending order."""

    # =========================================================================
    # Public Interface
    # =========================================================================

    def allocate_revision(self, project: str, workspace: str, stack: str) -> int:
        """
        Reserve the next revision of a triple.

        Revisions start at 1 and are never handed out twice. The caller stores
        its Release at the reserved revision with ``save_release()``.
        """
        with self._lock:
            revision = self._reserve_revision((project, workspace, stack))
            logger.debug(f"Allocated revision {revision} for {project}/{workspace}/{stack}")
            return revision

    def create_release(self, project: str, workspace: str, stack: str) -> Release:
        """
        Allocate a revision and persist a new Release in ``generating``.

        The new Release starts from a copy of the latest Release's State.

        Returns:
            Release: The stored Release
        """
        key = (project, workspace, stack)
        with self._lock:
            revision = self._reserve_revision(key)
            try:
                latest = self.get_latest_release(project, workspace, stack)
                release = new_release(
                    project, workspace, stack, revision,
                    baseline=latest.state if latest is not None else None,
                )
                self._insert(key, revision, release.to_dict())
            finally:
                self._drop_reservation(key, revision)

        logger.info(f"Created release {release.describe()}")
        return release

    def save_release(self, release: Release) -> None:
        """
        Persist a Release at an existing or reserved revision.

        Raises:
            ReleaseNotFoundError: If the revision was never created or reserved
            InvalidTransitionError: If the stored Release is already terminal
        """
        key = release.key
        with self._lock:
            stored = self._load(key, release.revision)
            if stored is None:
                if not self._is_reserved(key, release.revision):
                    raise ReleaseNotFoundError(
                        f"Release {release.describe()} does not exist; create it before saving"
                    )
                self._insert(key, release.revision, release.to_dict())
                self._drop_reservation(key, release.revision)
                logger.info(f"Stored release {release.describe()} at its reserved revision")
                return
            if Release.from_dict(stored).is_terminal:
                raise InvalidTransitionError(f"Release {release.describe()} is terminal and immutable")
            self._replace(key, release.revision, release.to_dict())
        logger.debug(f"Saved release {release.describe()} in phase {release.phase.value}")

    def get_release(self, project: str, workspace: str, stack: str, revision: int) -> Release:
        """
        Load one Release.

        Raises:
            ReleaseNotFoundError: If the revision does not exist
        """
        with self._lock:
            record = self._load((project, workspace, stack), revision)
        if record is None:
            raise ReleaseNotFoundError(f"Release {project}/{workspace}/{stack}@{revision} not found")
        return Release.from_dict(record)

    def get_latest_release(self, project: str, workspace: str, stack: str) -> Optional[Release]:
        """
        Load the Release with the highest revision.

        Returns:
            Release if any exists for the triple, None otherwise
        """
        with self._lock:
            revisions = self._revisions((project, workspace, stack))
            if not revisions:
                return None
            return self.get_release(project, workspace, stack, revisions[-1])

    def list_releases(self, project: str, workspace: str, stack: str) -> List[Release]:
        """All Releases of a triple in ascending revision order."""
        with self._lock:
            return [
                self.get_release(project, workspace, stack, revision)
                for revision in self._revisions((project, workspace, stack))
            ]


class InMemoryReleaseStore(ReleaseStore):
    """Release store kept in process memory."""

    def __init__(self):
        super().__init__()
        self._records: Dict[ReleaseKey, Dict[int, Dict[str, Any]]] = {}
        self._allocated: Dict[ReleaseKey, int] = {}
        self._reserved: Dict[ReleaseKey, Set[int]] = {}

    def _reserve_revision(self, key: ReleaseKey) -> int:
        revision = self._allocated.get(key, 0) + 1
        self._allocated[key] = revision
        self._reserved.setdefault(key, set()).add(revision)
        return revision

    def _is_reserved(self, key: ReleaseKey, revision: int) -> bool:
        return revision in self._reserved.get(key, set())

    def _drop_reservation(self, key: ReleaseKey, revision: int) -> None:
        self._reserved.get(key, set()).discard(revision)

    def _insert(self, key: ReleaseKey, revision: int, record: Dict[str, Any]) -> None:
        records = self._records.setdefault(key, {})
        if revision in records:
            raise RevisionConflictError(f"Revision {revision} of {'/'.join(key)} already exists")
        records[revision] = record

    def _replace(self, key: ReleaseKey, revision: int, record: Dict[str, Any]) -> None:
        self._records[key][revision] = record

    def _load(self, key: ReleaseKey, revision: int) -> Optional[Dict[str, Any]]:
        return self._records.get(key, {}).get(revision)

    def _revisions(self, key: ReleaseKey) -> List[int]:
        return sorted(self._records.get(key, {}))


_SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class FileReleaseStore(ReleaseStore):
    """
    Release store backed by joblib files.

    Layout: ``<root>/<project>/<workspace>/<stack>/<revision>.joblib``.
    A revision is reserved by exclusively creating ``<revision>.claim`` in the
    stack directory. Exclusive creation is the compare-and-swap shared by every
    store instance and process using the same root: a writer that loses the
    race moves on to the next revision. The claim is removed once the record
    exists. Records are written to a temporary file first and then renamed.
    """

    def __init__(self, root: Path):
        """
        Initialize FileReleaseStore.

        Args:
            root: Directory holding all release records
        """
        super().__init__()
        self.root = Path(root)
        logger.info(f"FileReleaseStore initialized at: {self.root}")

    def _directory(self, key: ReleaseKey) -> Path:
        for part in key:
            if not _SAFE_NAME.match(part):
                raise StoreError(f"Invalid name for release storage: {part!r}")
        return self.root.joinpath(*key)

    def _path(self, key: ReleaseKey, revision: int) -> Path:
        return self._directory(key) / f"{revision}.joblib"

    def _claim_path(self, key: ReleaseKey, revision: int) -> Path:
        return self._directory(key) / f"{revision}.claim"

    def _claims(self, key: ReleaseKey) -> List[int]:
        directory = self._directory(key)
        if not directory.exists():
            return []
        return sorted(
            int(path.stem) for path in directory.glob("*.claim") if path.stem.isdigit()
        )

    def _reserve_revision(self, key: ReleaseKey) -> int:
        directory = self._directory(key)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Could not create release directory {directory}: {e}") from e

        while True:
            taken = self._revisions(key) + self._claims(key)
            revision = max(taken, default=0) + 1
            try:
                with open(self._claim_path(key, revision), "x"):
                    pass
            except FileExistsError:
                logger.debug(f"Revision {revision} of {'/'.join(key)} claimed elsewhere, retrying")
                continue
            except OSError as e:
                raise StoreError(f"Could not reserve revision {revision}: {e}") from e
            return revision

    def _is_reserved(self, key: ReleaseKey, revision: int) -> bool:
        return self._claim_path(key, revision).exists()

    def _drop_reservation(self, key: ReleaseKey, revision: int) -> None:
        try:
            self._claim_path(key, revision).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove claim for revision {revision}: {e}")

    def _insert(self, key: ReleaseKey, revision: int, record: Dict[str, Any]) -> None:
        path = self._path(key, revision)
        if path.exists():
            raise RevisionConflictError(f"Revision {revision} of {'/'.join(key)} already exists")
        self._write(path, record)

    def _replace(self, key: ReleaseKey, revision: int, record: Dict[str, Any]) -> None:
        self._write(self._path(key, revision), record)

    def _write(self, path: Path, record: Dict[str, Any]) -> None:
        try:
            # Write to temporary file first, then rename (atomic operation)
            temp_file = path.with_suffix(".tmp")
            joblib.dump(record, temp_file)
            temp_file.replace(path)
        except OSError as e:
            logger.error(f"Failed to save release record {path}: {e}")
            raise StoreError(f"Could not save release record: {e}") from e

    def _load(self, key: ReleaseKey, revision: int) -> Optional[Dict[str, Any]]:
        path = self._path(key, revision)
        if not path.exists():
            return None
        try:
            return joblib.load(path)
        except Exception as e:
            logger.error(f"Failed to load release record {path}: {e}")
            raise StoreError(f"Could not load release record {path}: {e}") from e

    def _revisions(self, key: ReleaseKey) -> List[int]:
        directory = self._directory(key)
        if not directory.exists():
            return []
        return sorted(
            int(path.stem) for path in directory.glob("*.joblib") if path.stem.isdigit()
        )
