"""
The core application service and pipeline, containing pure business logic.

This module defines the main orchestrator (SnapshotBackupService) for a
backup run and the pipeline (SnapshotTransferPipeline) that brings a single
resolved snapshot onto disk.
"""

import logging
from pathlib import Path
from typing import Sequence

from tqdm.contrib.logging import logging_redirect_tqdm

from .domain import *
from .effects import EffectRunner, MakeDirectory, MoveFile, RemoveFile
from .exceptions import IntegrityError, TransferError

logger = logging.getLogger(__name__)


class SnapshotTransferPipeline:
    """Encapsulates transfer, verification and promotion of one snapshot."""

    def __init__(
        self,
        downloader: Downloader,
        verifier: Verifier,
        publisher: Publisher,
        effects: EffectRunner,
    ):
        """Initializes the pipeline with necessary dependencies (ports)."""
        self.logger = logging.getLogger(self.__class__.__name__)
        self.downloader = downloader
        self.verifier = verifier
        self.publisher = publisher
        self.effects = effects

    async def run(
        self, reference: SnapshotReference, snapshot: PublishedSnapshot
    ) -> PublishedSnapshot:
        """Executes the sequential steps for bringing one snapshot onto disk.

        Args:
            reference: The resolved snapshot to download.
            snapshot: Where the verified snapshot is published.

        Returns:
            The published snapshot.

        Raises:
            TransferError: If either download fails.
            IntegrityError: If the digest does not match; both staged files
                            are removed first.
        """

        staged = StagedSnapshot.for_snapshot(snapshot)

        # Step 1: Transfer (SnapshotReference -> StagedSnapshot)
        self.logger.info("Downloading ZIM (resumable)...")
        await self.downloader.fetch(reference.url, staged.path)
        self.logger.info("Downloading SHA256...")
        # Sidecars are never resumed.
        self.effects.run(RemoveFile(staged.checksum_path))
        await self.downloader.fetch(reference.checksum_url, staged.checksum_path)

        # Step 2: Verify (StagedSnapshot -> void)
        if not self.effects.intercept(f"verify {staged.path.name}"):
            self.logger.info("Verifying SHA256...")
            try:
                await self.verifier.verify(staged.path, staged.checksum_path)
            except IntegrityError:
                self.effects.run(RemoveFile(staged.checksum_path))
                self.logger.error("Verification failed. Partial file removed.")
                raise

        # Step 3: Publish (StagedSnapshot -> PublishedSnapshot)
        return self.publisher.publish(staged, snapshot)


class SnapshotBackupService:
    """
    Drives a complete backup run.

    Stages always run in the same order: resolve, transfer or skip, optional
    descriptor, alias, retention. Retention only ever sees the snapshot the
    alias was just pointed at, and never removes it.
    """

    def __init__(
        self,
        resolver: Resolver,
        downloader: Downloader,
        verifier: Verifier,
        publisher: Publisher,
        retention: Retention,
        effects: EffectRunner,
        dest_dir: Path,
        edition: str,
        mirrors: Sequence[Mirror],
        keep_versions: int,
        grab_torrent: bool = True,
        force_check: bool = False,
    ):
        """Initializes the service and the reusable transfer pipeline."""
        self.resolver = resolver
        self.downloader = downloader
        self.verifier = verifier
        self.publisher = publisher
        self.retention = retention
        self.effects = effects
        self.dest_dir = Path(dest_dir)
        self.edition = edition
        self.mirrors = tuple(mirrors)
        self.keep_versions = keep_versions
        self.grab_torrent = grab_torrent
        self.force_check = force_check
        self.pipeline = SnapshotTransferPipeline(
            downloader, verifier, publisher, effects
        )

    async def _ensure_snapshot(
        self, reference: SnapshotReference, snapshot: PublishedSnapshot
    ) -> PublishedSnapshot:
        """Download the snapshot unless a verified copy is already published."""
        if not snapshot.path.exists():
            return await self.pipeline.run(reference, snapshot)

        logger.info(f"Already present: {snapshot.path.name} (skipping download).")
        if self.force_check:
            await self.verifier.verify(
                snapshot.path, snapshot.checksum_path, discard=False
            )
        return snapshot

    async def _fetch_torrent(
        self, reference: SnapshotReference, snapshot: PublishedSnapshot
    ):
        """Best effort: failures are logged and never abort the run."""
        if snapshot.torrent_path.exists():
            logger.info(f"Already present: {snapshot.torrent_path.name}")
            return

        logger.info("Fetching .torrent (optional)...")
        staged = staging_path(snapshot.torrent_path)
        try:
            self.effects.run(RemoveFile(staged))
            await self.downloader.fetch(reference.torrent_url, staged)
            saved = self.effects.run(MoveFile(staged, snapshot.torrent_path))
        except (TransferError, OSError) as e:
            logger.warning(f"Note: torrent not available (or fetch failed): {e}")
            return
        if saved:
            logger.info(f"Saved: {snapshot.torrent_path.name}")

    async def run(self) -> PublishedSnapshot:
        """
        Executes one backup run.

        Returns:
            The snapshot the alias points at after the run.

        Raises:
            ResolutionError: If no mirror resolves.
            TransferError: If the snapshot or its sidecar cannot be fetched.
            IntegrityError: If the downloaded snapshot fails verification.
        """

        logger.info(f"Starting backup of {self.edition} into {self.dest_dir}")
        reference = await self.resolver.resolve(self.mirrors, self.edition)
        self.effects.run(MakeDirectory(self.dest_dir))
        logger.info(f"Latest file: {reference.filename}")
        logger.info(f"From: {reference.directory_url}")

        snapshot = PublishedSnapshot.in_directory(self.dest_dir, reference.filename)

        with logging_redirect_tqdm():
            snapshot = await self._ensure_snapshot(reference, snapshot)
            if self.grab_torrent:
                await self._fetch_torrent(reference, snapshot)

        self.publisher.point_alias(alias_path(self.dest_dir, self.edition), snapshot)

        pruned = self.retention.prune(
            self.dest_dir,
            self.edition,
            self.keep_versions,
            protect=snapshot.path.name,
        )
        if pruned:
            logger.info(f"Pruned {len(pruned)} old snapshot(s).")

        logger.info("Done.")
        return snapshot
