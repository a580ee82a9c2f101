"""Selective zip extraction into a profile tree.

A section of an archive is selected either by a subfolder prefix or by a
full-path regex. Extracting ``overrides/mods`` writes into ``mods/`` at the
destination: everything above the last component of the subfolder is
stripped from the written path.
"""

from __future__ import annotations

import re
import shutil
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path

import structlog

from packsync.core.errors import ArchiveSecurityError, MissingArchiveSectionError
from packsync.core.paths import normalize_relative, resolve_within
from packsync.core.progress import CancellationToken, ProgressReporter

logger = structlog.get_logger()


@dataclass
class ExtractOptions:
    """Policy for one extraction.

    Attributes:
        subfolder: Archive-internal folder to extract (prefix match)
        overwrite_existing: Replace files that already exist at the destination
        filename_pattern: Regex matched against the full normalized entry path;
            takes precedence over subfolder
        token: Optional cancellation token
        progress: Optional progress reporter
    """

    subfolder: str | None = None
    overwrite_existing: bool = True
    filename_pattern: str | None = None
    token: CancellationToken | None = None
    progress: ProgressReporter | None = None

    def describe(self) -> str:
        if self.filename_pattern is not None:
            return f"pattern {self.filename_pattern}"
        return f"folder {self.subfolder or '/'}"


@dataclass
class ExtractResult:
    """Counts from one extraction."""

    matched: int = 0
    written: int = 0
    skipped: int = 0


class ArchiveExtractor:
    """Extracts sections of a zip archive under an overwrite policy.

    Args:
        archive_path: Path to the zip file
    """

    def __init__(self, archive_path: Path) -> None:
        self.archive_path = archive_path
        try:
            self._zip = zipfile.ZipFile(archive_path)
        except zipfile.BadZipFile as e:
            raise ArchiveSecurityError(f"Corrupt archive {archive_path}: {e}") from e

    def _select(self, options: ExtractOptions) -> list[tuple[zipfile.ZipInfo, str]]:
        """Pick matching file entries and compute their destination paths."""
        selected: list[tuple[zipfile.ZipInfo, str]] = []

        if options.filename_pattern is not None:
            pattern = re.compile(options.filename_pattern)
            for info in self._zip.infolist():
                name = normalize_relative(info.filename)
                if info.is_dir() or not name:
                    continue
                if pattern.fullmatch(name):
                    selected.append((info, name))
            return selected

        prefix = normalize_relative(options.subfolder or "")
        strip = prefix.rpartition("/")[0]

        for info in self._zip.infolist():
            name = normalize_relative(info.filename)
            if info.is_dir() or not name:
                continue
            if prefix and not (name == prefix or name.startswith(prefix + "/")):
                continue
            relative = name[len(strip) + 1:] if strip else name
            selected.append((info, relative))

        return selected

    def _run(self, destination: Path, options: ExtractOptions) -> ExtractResult:
        entries = self._select(options)
        result = ExtractResult(matched=len(entries))
        total = len(entries)

        # Every entry is checked before the first write.
        targets: list[tuple[zipfile.ZipInfo, Path]] = []
        for info, relative in entries:
            try:
                targets.append((info, resolve_within(destination, relative)))
            except ValueError as e:
                raise ArchiveSecurityError(
                    f"Unsafe entry in {self.archive_path.name}: {e}",
                    entry=info.filename,
                ) from e

        for index, (info, target) in enumerate(targets):
            if options.token is not None:
                options.token.raise_if_cancelled()

            if target.exists() and not options.overwrite_existing:
                result.skipped += 1
                continue

            target.parent.mkdir(parents=True, exist_ok=True)
            try:
                with self._zip.open(info) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
            except (zipfile.BadZipFile, zlib.error, EOFError) as e:
                raise ArchiveSecurityError(
                    f"Corrupt entry in {self.archive_path.name}: {e}",
                    entry=info.filename,
                ) from e
            result.written += 1

            if options.progress is not None:
                options.progress.report((index + 1) / total)

        logger.debug(
            "archive_extracted",
            archive=self.archive_path.name,
            section=options.describe(),
            written=result.written,
            skipped=result.skipped,
        )
        return result

    def extract(self, destination: Path, options: ExtractOptions) -> bool:
        """Extract a required section.

        Raises:
            MissingArchiveSectionError: If no entries match
            ArchiveSecurityError: If an entry is corrupt or escapes destination
        """
        result = self._run(destination, options)
        if result.matched == 0:
            raise MissingArchiveSectionError(self.archive_path.name, options.describe())
        return True

    def try_extract(self, destination: Path, options: ExtractOptions) -> bool:
        """Extract an optional section.

        Returns:
            False if the archive has no matching entries, True otherwise
        """
        return self._run(destination, options).matched > 0

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> ArchiveExtractor:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
