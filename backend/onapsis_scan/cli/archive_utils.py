from __future__ import annotations

import logging
import os
import shutil
import zipfile
from pathlib import Path
from typing import List, Optional

from ..scanner.errors import ArchiveError
from ..scanner.models import ARCHIVE_NAME, DEFAULT_PATTERNS, ArchivePatterns, ArchiveSummary

logger = logging.getLogger(__name__)

_COPY_CHUNK_SIZE = 1024 * 1024


class WorkspaceArchiver:
    """Builds a zip archive of a directory tree filtered by an ``ArchivePatterns`` set.

    Entries are named relative to the parent of the archived root, so
    archiving ``/ci/workspace`` produces ``workspace/src/app.js`` and so on.
    Excluded directories are pruned entirely; directories that merely fail
    the inclusion patterns are still descended into.
    """

    def __init__(self, patterns: ArchivePatterns = DEFAULT_PATTERNS) -> None:
        self.patterns = patterns.with_exclusions(ARCHIVE_NAME)

    def build(self, root: Path | str, output: Path | str) -> ArchiveSummary:
        """Archive ``root`` into ``output`` and return what was written.

        Raises:
            ArchiveError: If the output cannot be created, the tree cannot be
                walked, or a matched file cannot be read or written. The
                partially written output file is removed before raising.
        """
        root = Path(root).absolute()
        output = Path(output).absolute()
        logger.info("Starting to zip folder: %s", root)

        try:
            handle = output.open("wb")
        except OSError as exc:
            raise ArchiveError("failed to create zip file", output) from exc

        summary = ArchiveSummary(path=output)
        try:
            with handle, zipfile.ZipFile(
                handle,
                mode="w",
                compression=zipfile.ZIP_DEFLATED,
                allowZip64=True,
            ) as zf:
                logger.info("Created zip file: %s", output)
                self._zip_tree(zf, root, output, summary)
        except ArchiveError:
            self._discard(output)
            raise
        except (OSError, ValueError, zipfile.LargeZipFile) as exc:
            self._discard(output)
            raise ArchiveError("failed to write zip file", output) from exc

        logger.info("Successfully zipped %d files", summary.files)
        return summary

    def _zip_tree(self, zf: zipfile.ZipFile, root: Path, output: Path, summary: ArchiveSummary) -> None:
        base = root.parent
        if not root.is_dir():
            raise ArchiveError("failed to zip folder, not a directory", root)
        if not self._visit(zf, root, base, output, summary, is_dir=True):
            return

        def _raise(exc: OSError) -> None:
            raise ArchiveError("failed to zip folder", exc.filename) from exc

        for current_root, dirs, files in os.walk(root, onerror=_raise):
            current = Path(current_root)
            kept: List[str] = []
            for name in sorted(dirs):
                if self._visit(zf, current / name, base, output, summary, is_dir=True):
                    kept.append(name)
            # Pruning happens in place so os.walk never descends into excluded trees.
            dirs[:] = kept
            for name in sorted(files):
                self._visit(zf, current / name, base, output, summary, is_dir=False)

    def _visit(
        self,
        zf: zipfile.ZipFile,
        path: Path,
        base: Path,
        output: Path,
        summary: ArchiveSummary,
        *,
        is_dir: bool,
    ) -> bool:
        """Archive ``path`` if it passes the filters; return False when a directory is pruned."""
        if path == output:
            return False

        arcname = path.relative_to(base).as_posix()
        pattern = self.patterns.excluded_by(arcname, is_dir=is_dir)
        if pattern is not None:
            logger.debug("Excluding: %s (matches pattern: %s)", path, pattern)
            return False

        if not self.patterns.is_included(arcname, is_dir=is_dir):
            logger.debug("Skipping: %s (does not match include patterns)", path)
            return True

        logger.debug("Zipping file or directory: %s", path)
        if is_dir:
            self._write_directory(zf, path, arcname)
            summary.directories += 1
        else:
            summary.bytes += self._write_file(zf, path, arcname)
            summary.files += 1
        return True

    @staticmethod
    def _write_directory(zf: zipfile.ZipFile, path: Path, arcname: str) -> None:
        try:
            info = zipfile.ZipInfo.from_file(path, arcname, strict_timestamps=False)
            zf.writestr(info, b"")
        except OSError as exc:
            raise ArchiveError("failed to write header for directory", path) from exc

    @staticmethod
    def _write_file(zf: zipfile.ZipFile, path: Path, arcname: str) -> int:
        try:
            info = zipfile.ZipInfo.from_file(path, arcname, strict_timestamps=False)
        except OSError as exc:
            raise ArchiveError("failed to create zip header for file", path) from exc
        info.compress_type = zipfile.ZIP_DEFLATED

        try:
            source = path.open("rb")
        except OSError as exc:
            raise ArchiveError("failed to open file", path) from exc

        with source:
            try:
                with zf.open(info, mode="w") as target:
                    shutil.copyfileobj(source, target, _COPY_CHUNK_SIZE)
            except OSError as exc:
                raise ArchiveError("failed to copy file content to zip", path) from exc
        # zipfile rewrites file_size with the number of bytes actually streamed.
        return info.file_size

    @staticmethod
    def _discard(output: Path) -> None:
        try:
            output.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove partial archive %s: %s", output, exc)


def zip_project(
    root: Path | str,
    output: Path | str,
    *,
    patterns: Optional[ArchivePatterns] = None,
) -> ArchiveSummary:
    """Archive ``root`` into ``output`` using the default or supplied pattern set."""
    return WorkspaceArchiver(patterns or DEFAULT_PATTERNS).build(root, output)
