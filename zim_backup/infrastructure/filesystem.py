"""Filesystem implementations of the Publisher and Retention ports."""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from ..application.domain import (
    CHECKSUM_SUFFIX,
    STAGING_SUFFIX,
    TORRENT_SUFFIX,
    PublishedSnapshot,
    Publisher,
    Retention,
    StagedSnapshot,
    dated_snapshot_pattern,
    snapshot_version,
)
from ..application.effects import (
    EffectRunner,
    MoveFile,
    RemoveFile,
    ReplaceSymlink,
    TouchFile,
)


class FilesystemPublisher(Publisher):
    """Promotes staged files by rename and keeps a relative alias symlink."""

    def __init__(self, effects: EffectRunner):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.effects = effects

    def publish(
        self, staged: StagedSnapshot, snapshot: PublishedSnapshot
    ) -> PublishedSnapshot:
        # The snapshot goes last: its final name implies a complete sidecar.
        self.effects.run(MoveFile(staged.checksum_path, snapshot.checksum_path))
        self.effects.run(MoveFile(staged.path, snapshot.path))
        # Retention orders by mtime; a resumed download may be days old.
        self.effects.run(TouchFile(snapshot.path))
        self.logger.info(f"Verified and moved into place: {snapshot.path.name}")
        return snapshot

    def point_alias(self, alias: Path, snapshot: PublishedSnapshot):
        self.effects.run(ReplaceSymlink(link=alias, target=snapshot.path.name))
        self.logger.info(f"Updated symlink: {alias.name} -> {snapshot.path.name}")


class SnapshotRetention(Retention):
    """Keeps the newest snapshots of an edition by modification time."""

    def __init__(self, effects: EffectRunner):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.effects = effects

    @staticmethod
    def list_snapshots(directory: Path, edition: str) -> List[Path]:
        """Dated snapshots of an edition, newest first."""
        if not directory.is_dir():
            return []
        pattern = dated_snapshot_pattern(edition)
        snapshots = [
            path
            for path in directory.iterdir()
            if pattern.fullmatch(path.name) and path.is_file()
            and not path.is_symlink()
        ]
        return sorted(snapshots, key=lambda p: p.stat().st_mtime, reverse=True)

    @staticmethod
    def _staged_version(name: str, edition: str) -> Optional[Tuple[int, int]]:
        """Version of a `.part` staging file of this edition, or None."""
        if not name.endswith(STAGING_SUFFIX):
            return None
        base = name[: -len(STAGING_SUFFIX)]
        for suffix in (CHECKSUM_SUFFIX, TORRENT_SUFFIX):
            if base.endswith(suffix):
                base = base[: -len(suffix)]
                break
        return snapshot_version(base, edition)

    def _remove_superseded_staging(self, directory: Path, edition: str, current: str):
        """Drop leftover `.part` files of versions older than `current`."""
        current_version = snapshot_version(current, edition)
        if current_version is None or not directory.is_dir():
            return
        for path in sorted(directory.iterdir()):
            version = self._staged_version(path.name, edition)
            if version is not None and version < current_version:
                if self.effects.run(RemoveFile(path)):
                    self.logger.info(f"Removed stale partial file {path.name}")

    def prune(
        self,
        directory: Path,
        edition: str,
        keep: int,
        protect: Optional[str] = None,
    ) -> List[str]:
        """
        Remove every snapshot beyond the `keep` newest, with its sidecars.

        Leftover staging files of versions older than `protect` are removed
        as well.

        Args:
            directory: The destination directory.
            edition: The archive variant whose snapshots are considered.
            keep: How many of the newest snapshots survive.
            protect: A snapshot name that must survive regardless of age,
                     normally the current alias target. If it is not on disk
                     yet (a dry run), it still takes the newest slot.

        Returns:
            The names of the removed snapshots.
        """

        if protect:
            self._remove_superseded_staging(directory, edition, protect)

        snapshots = self.list_snapshots(directory, edition)
        if protect and not (directory / protect).exists():
            keep -= 1
        if len(snapshots) <= keep:
            return []

        pruned = []
        for path in snapshots[keep:]:
            if path.name == protect:
                self.logger.warning(
                    f"Not pruning {path.name}: it is the current snapshot."
                )
                continue
            snapshot = PublishedSnapshot(path=path)
            for target in (path, snapshot.checksum_path, snapshot.torrent_path):
                self.effects.run(RemoveFile(target))
            self.logger.info(f"Pruned {path.name}")
            pruned.append(path.name)
        return pruned
