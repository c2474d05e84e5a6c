"""
This module defines the core domain models for the application.

These classes represent the pure, technology-agnostic entities and data
structures that the backup pipeline operates on, along with the ports
(interfaces) its infrastructure adapters fulfil.
"""

import dataclasses
import posixpath
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
from urllib.parse import unquote, urlsplit

SNAPSHOT_EXTENSION = "zim"
CHECKSUM_SUFFIX = ".sha256"
TORRENT_SUFFIX = ".torrent"
STAGING_SUFFIX = ".part"


def dated_snapshot_pattern(
    edition: str, extension: str = SNAPSHOT_EXTENSION
) -> "re.Pattern[str]":
    """Pattern for `{edition}_YYYY-MM.{extension}`, to be used with fullmatch."""
    return re.compile(
        rf"{re.escape(edition)}_(?P<year>\d{{4}})-(?P<month>\d{{2}})"
        rf"\.{re.escape(extension)}"
    )


def snapshot_version(filename: str, edition: str) -> Optional[Tuple[int, int]]:
    """Returns the (year, month) of a dated snapshot name, or None."""
    match = dated_snapshot_pattern(edition).fullmatch(filename)
    if match is None:
        return None
    return int(match.group("year")), int(match.group("month"))


def alias_path(directory: Path, edition: str) -> Path:
    """Location of the stable alias for an edition."""
    return directory / f"{edition}_current.{SNAPSHOT_EXTENSION}"


# --- Domain Models ---

@dataclasses.dataclass(frozen=True)
class Mirror:
    """A base URL serving snapshots, tried in ascending rank order."""

    url: str
    rank: int

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")


@dataclasses.dataclass(frozen=True)
class SnapshotReference:
    """
    The concrete URL of a dated snapshot, resolved once per run.

    Companion URLs are derived from the directory of the resolved URL.
    """

    url: str
    mirror: Mirror

    @property
    def filename(self) -> str:
        return unquote(posixpath.basename(urlsplit(self.url).path))

    @property
    def directory_url(self) -> str:
        return self.url.rsplit("/", 1)[0]

    @property
    def checksum_url(self) -> str:
        return f"{self.directory_url}/{self.filename}{CHECKSUM_SUFFIX}"

    @property
    def torrent_url(self) -> str:
        return f"{self.directory_url}/{self.filename}{TORRENT_SUFFIX}"


@dataclasses.dataclass(frozen=True)
class PublishedSnapshot:
    """A dated snapshot file under the destination directory."""

    path: Path

    @classmethod
    def in_directory(cls, directory: Path, filename: str) -> "PublishedSnapshot":
        return cls(path=directory / filename)

    @property
    def checksum_path(self) -> Path:
        return self.path.with_name(self.path.name + CHECKSUM_SUFFIX)

    @property
    def torrent_path(self) -> Path:
        return self.path.with_name(self.path.name + TORRENT_SUFFIX)


@dataclasses.dataclass(frozen=True)
class StagedSnapshot:
    """
    Staging locations for a snapshot and its checksum sidecar.

    The staging suffix keeps an interrupted transfer from ever being taken
    for a completed snapshot.
    """

    path: Path
    checksum_path: Path

    @classmethod
    def for_snapshot(cls, snapshot: PublishedSnapshot) -> "StagedSnapshot":
        return cls(
            path=staging_path(snapshot.path),
            checksum_path=staging_path(snapshot.checksum_path),
        )


def staging_path(final_path: Path) -> Path:
    """The `.part` companion of a final path."""
    return final_path.with_name(final_path.name + STAGING_SUFFIX)


# --- Ports (Interfaces) ---

class Resolver(ABC):
    """A port for turning the 'latest' indirection into a concrete URL."""

    @abstractmethod
    async def resolve(
        self, mirrors: Sequence[Mirror], edition: str
    ) -> SnapshotReference:
        """
        Resolves the latest dated snapshot.
        Raises ResolutionError when no mirror resolves.
        """
        pass


class Downloader(ABC):
    """A port for any resumable file downloader."""

    @abstractmethod
    async def fetch(self, url: str, destination: Path) -> int:
        """Downloads a resource to a staging path, returning bytes written."""
        pass


class Verifier(ABC):
    """A port for checking file contents against a checksum sidecar."""

    @abstractmethod
    async def verify(
        self, staged_file: Path, checksum_file: Path, discard: bool = True
    ):
        """
        Verifies the integrity of a file.
        Raises IntegrityError on mismatch.
        """
        pass


class Publisher(ABC):
    """A port for promoting verified files and maintaining the alias."""

    @abstractmethod
    def publish(
        self, staged: StagedSnapshot, snapshot: PublishedSnapshot
    ) -> PublishedSnapshot:
        """Moves a verified staged snapshot to its final name."""
        pass

    @abstractmethod
    def point_alias(self, alias: Path, snapshot: PublishedSnapshot):
        """Points the stable alias at a published snapshot."""
        pass


class Retention(ABC):
    """A port for bounding the number of snapshots kept on disk."""

    @abstractmethod
    def prune(
        self,
        directory: Path,
        edition: str,
        keep: int,
        protect: Optional[str] = None,
    ) -> List[str]:
        """Removes all but the newest `keep` snapshots, returning their names."""
        pass
