"""
Directory mirroring via content hashing.

Keeps a target tree identical to a trusted source tree: changed or
missing files are copied over, files absent from the source are
deleted. Every decision is based on current on-disk state only, so a
cycle interrupted midway is healed by the next one.
"""

import logging
import os
import shutil
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..audit import AuditLog
from ..core.exceptions import DirectorySyncError
from ..core.models import FileEntry
from ..core.reconciler import CycleReport, Reconciler
from ..snapshot.fingerprint import ContentFingerprinter

logger = logging.getLogger(__name__)


@dataclass
class DirectorySyncReport(CycleReport):
    """Report of one directory sync cycle."""
    source_root: str = ""
    target_root: str = ""
    total_files: int = 0
    copied: int = 0
    unchanged: int = 0
    deleted: int = 0
    copied_paths: List[str] = field(default_factory=list)
    deleted_paths: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.copied or self.deleted)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "source_root": self.source_root,
            "target_root": self.target_root,
            "total_files": self.total_files,
            "copied": self.copied,
            "unchanged": self.unchanged,
            "deleted": self.deleted,
            "copied_paths": self.copied_paths,
            "deleted_paths": self.deleted_paths,
        })
        return data

    def summary(self) -> str:
        prefix = "Dry run: " if self.dry_run else ""
        return (
            f"{prefix}Sync complete {self.source_root} -> {self.target_root}, "
            f"total files: {self.total_files}, copied: {self.copied}, "
            f"unchanged: {self.unchanged}, deleted: {self.deleted}"
        )


class DirectoryReconciler(Reconciler):
    """
    Mirrors source_root onto target_root.

    Enumeration rules:
    - Source: regular files only; symlinks and special files are skipped
      and never followed.
    - Target: regular files and symlinks; a target symlink whose path is
      not a source file is removed like any other stray file, and one that
      sits on a source path is replaced by a regular copy.
    - Directories are not compared and empty directories are left alone.
    """

    def __init__(
        self,
        source_root: Union[str, Path],
        target_root: Union[str, Path],
        fingerprinter: Optional[ContentFingerprinter] = None,
        audit: Optional[AuditLog] = None,
        dry_run: bool = False,
        name: Optional[str] = None,
    ):
        """
        Initialize the directory reconciler.

        Args:
            source_root: Trusted tree
            target_root: Protected tree to keep identical to the source
            fingerprinter: Content digester (sha256 by default)
            audit: Audit sink for copies and deletions
            dry_run: Report decisions without touching the target
            name: Reconciler name (defaults to dir:<target>)

        Raises:
            ValueError: If either root is empty or one root contains the other
        """
        if not str(source_root) or not str(target_root):
            raise ValueError("source_root and target_root must both be set")

        self.source_root = Path(source_root).resolve()
        self.target_root = Path(target_root).resolve()

        if (
            self.source_root == self.target_root
            or self.source_root in self.target_root.parents
            or self.target_root in self.source_root.parents
        ):
            raise ValueError(
                f"Source and target must be disjoint trees: {self.source_root}, {self.target_root}"
            )

        self.fingerprinter = fingerprinter or ContentFingerprinter()
        self.audit = audit or AuditLog.null(f"dir-{self.target_root.name}")
        self.dry_run = dry_run
        self.name = name or f"dir:{self.target_root}"

    def get_name(self) -> str:
        return self.name

    def run_cycle(self) -> DirectorySyncReport:
        return self.sync()

    def close(self) -> None:
        self.audit.close()

    def sync(self) -> DirectorySyncReport:
        """
        Run one mirroring pass.

        A path that cannot be repaired does not stop the pass: every other
        copy and deletion still runs, and the failures are raised together
        at the end.

        Returns:
            DirectorySyncReport with counts and touched paths

        Raises:
            DirectorySyncError: If a tree cannot be listed or any copy/delete failed
        """
        report = DirectorySyncReport(
            reconciler=self.name,
            dry_run=self.dry_run,
            source_root=str(self.source_root),
            target_root=str(self.target_root),
        )

        if not self.source_root.is_dir():
            raise DirectorySyncError(
                f"Source directory not found: {self.source_root}", path=str(self.source_root)
            )

        source_files = self._list_files(self.source_root, include_symlinks=False, report=report)
        target_files = self._list_files(self.target_root, include_symlinks=True, report=report)
        failures: List[str] = []

        for relative_path, entry in source_files.items():
            report.total_files += 1
            source_path = self.source_root / relative_path
            target_path = self.target_root / relative_path

            # A source file that could not be stat-ed is copied anyway
            if entry is not None and not self.should_copy(entry, target_path, report):
                report.unchanged += 1
                continue

            logger.info(f"Syncing {source_path} to {target_path}")
            if not self.dry_run:
                try:
                    self._copy(source_path, target_path)
                except DirectorySyncError as e:
                    logger.error(str(e))
                    failures.append(str(e))
                    continue
                self.audit.record("copied", str(target_path), source=str(source_path))
            report.copied += 1
            report.copied_paths.append(relative_path)

        # Deepest paths first
        strays = sorted(
            (p for p in target_files if p not in source_files),
            key=lambda p: p.count("/"),
            reverse=True,
        )
        for relative_path in strays:
            target_path = self.target_root / relative_path
            logger.info(f"Target file {target_path} does not exist in source, deleting")
            if not self.dry_run:
                try:
                    self._delete(target_path)
                except DirectorySyncError as e:
                    logger.error(str(e))
                    failures.append(str(e))
                    continue
                self.audit.record("removed-file", str(target_path))
            report.deleted += 1
            report.deleted_paths.append(relative_path)

        report.finish()
        if failures:
            report.errors.extend(failures)
            self.audit.error(f"{len(failures)} paths under {self.target_root} not repaired")
            raise DirectorySyncError(
                f"{len(failures)} paths under {self.target_root} could not be repaired: "
                f"{'; '.join(failures)}",
                path=str(self.target_root),
                failures=failures,
            )
        logger.info(report.summary())
        return report

    def should_copy(
        self,
        source: FileEntry,
        target_path: Path,
        report: Optional[DirectorySyncReport] = None,
    ) -> bool:
        """
        Decide whether target_path must be overwritten from source.

        Short-circuits: a parent path that is not a real directory, target
        missing, target not a regular file, size mismatch, digest mismatch.
        Any error while stat-ing or hashing counts as changed.
        """
        if self._blocking_parent(target_path) is not None:
            return True

        try:
            target_stat = os.lstat(target_path)
        except FileNotFoundError:
            return True
        except OSError as e:
            self._fail_open(f"Cannot stat target file {target_path}: {e}", report)
            return True

        if not stat.S_ISREG(target_stat.st_mode):
            return True

        if source.size != target_stat.st_size:
            return True

        try:
            source_digest = source.digest(self.fingerprinter)
        except OSError as e:
            self._fail_open(f"Cannot hash source file {source.path}: {e}", report)
            return True

        try:
            target_digest = self.fingerprinter.digest_file(target_path)
        except OSError as e:
            self._fail_open(f"Cannot hash target file {target_path}: {e}", report)
            return True

        return source_digest != target_digest

    def _fail_open(self, message: str, report: Optional[DirectorySyncReport]) -> None:
        logger.warning(f"{message}; treating as changed")
        if report is not None:
            report.errors.append(message)

    def _list_files(
        self,
        root: Path,
        include_symlinks: bool,
        report: DirectorySyncReport,
    ) -> Dict[str, Optional[FileEntry]]:
        """
        Recursively list files under root keyed by POSIX relative path.

        A missing root lists as empty. An entry that cannot be stat-ed
        maps to None: in the source it is still copied, in the target it
        is still a stray candidate.
        """
        files: Dict[str, Optional[FileEntry]] = {}
        if not os.path.lexists(root):
            return files
        if not root.is_dir():
            raise DirectorySyncError(f"Not a directory: {root}", path=str(root))

        def _on_error(error: OSError) -> None:
            raise DirectorySyncError(
                f"Cannot access path {error.filename}: {error}", path=error.filename
            ) from error

        for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error, followlinks=False):
            for filename in filenames:
                path = Path(dirpath) / filename
                relative_path = path.relative_to(root).as_posix()
                try:
                    st = os.lstat(path)
                except OSError as e:
                    message = f"Cannot stat {path}: {e}"
                    logger.warning(message)
                    report.errors.append(message)
                    files[relative_path] = None
                    continue

                if stat.S_ISLNK(st.st_mode):
                    if not include_symlinks:
                        logger.debug(f"Skipping symlink {path}")
                        continue
                elif not stat.S_ISREG(st.st_mode):
                    logger.debug(f"Skipping special file {path}")
                    continue

                files[relative_path] = FileEntry(
                    path=path,
                    relative_path=relative_path,
                    size=st.st_size,
                )

            # Symlinked directories are listed as entries, not walked
            if include_symlinks:
                for dirname in dirnames:
                    path = Path(dirpath) / dirname
                    if os.path.islink(path):
                        relative_path = path.relative_to(root).as_posix()
                        files[relative_path] = FileEntry(
                            path=path, relative_path=relative_path, size=0
                        )

        return files

    def _copy(self, source_path: Path, target_path: Path) -> None:
        try:
            self._clear_way(target_path)
            target_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source_path, target_path)
        except OSError as e:
            raise DirectorySyncError(
                f"Failed to copy {source_path} to {target_path}: {e}", path=str(target_path)
            ) from e

    def _clear_way(self, target_path: Path) -> None:
        """
        Remove whatever stands where target_path or its parents must go.

        A parent that is a file or a symlink is unlinked so directories can
        be created. A directory or symlink at target_path itself is removed
        so a regular file can be written.
        """
        parent = self._blocking_parent(target_path)
        if parent is not None:
            logger.info(f"Removing {parent} blocking directory creation")
            os.unlink(parent)
            self.audit.record("removed-file", str(parent))

        if os.path.islink(target_path):
            os.unlink(target_path)
        elif target_path.is_dir():
            logger.info(f"Removing directory {target_path} standing at a file path")
            shutil.rmtree(target_path)
            self.audit.record("removed-dir", str(target_path))

    def _delete(self, target_path: Path) -> None:
        try:
            st = os.lstat(target_path)
        except (FileNotFoundError, NotADirectoryError):
            # Already gone with a parent replaced during the copy pass
            return
        except OSError as e:
            raise DirectorySyncError(
                f"Failed to stat stray file {target_path}: {e}", path=str(target_path)
            ) from e

        if stat.S_ISDIR(st.st_mode):
            # Replaced by a directory during the copy pass
            return

        try:
            os.unlink(target_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise DirectorySyncError(
                f"Failed to delete stray file {target_path}: {e}", path=str(target_path)
            ) from e

    def _blocking_parent(self, target_path: Path) -> Optional[Path]:
        """First parent of target_path below the root that is a file or a symlink."""
        parent = self.target_root
        for part in target_path.relative_to(self.target_root).parts[:-1]:
            parent = parent / part
            if not os.path.lexists(parent):
                return None
            if os.path.islink(parent) or not parent.is_dir():
                return parent
        return None
