"""
Infrastructure adapter for checksum verification.
"""

import asyncio
import hashlib
import logging
from pathlib import Path

from ..application.domain import Verifier
from ..application.effects import EffectRunner, RemoveFile
from ..application.exceptions import IntegrityError


def expected_digest(checksum_file: Path) -> str:
    """
    Reads the expected digest from a checksum sidecar.

    The first whitespace-delimited token of the first line is the hex digest;
    anything after it (usually the file name) is ignored.
    """
    with open(checksum_file, encoding="utf-8", errors="replace") as f:
        tokens = f.readline().split()
    return tokens[0].lower() if tokens else ""


class Sha256Verifier(Verifier):
    """An adapter that implements the Verifier port using SHA256."""

    def __init__(self, effects: EffectRunner, chunk_size: int = 1024 * 1024):
        """Initializes the verifier."""
        self.logger = logging.getLogger(self.__class__.__name__)
        self.effects = effects
        self.chunk_size = chunk_size

    async def _calculate_sha256(self, file_path: Path) -> str:
        """Perform the blocking I/O work of hashing a file."""

        self.logger.info(f"Computing checksum for {file_path.name}...")

        hasher = hashlib.sha256()

        def _read_and_hash():
            with open(file_path, "rb") as f:
                while chunk := f.read(self.chunk_size):
                    hasher.update(chunk)
            return hasher.hexdigest()

        return await asyncio.to_thread(_read_and_hash)

    async def verify(
        self, staged_file: Path, checksum_file: Path, discard: bool = True
    ):
        """
        Check a file against the digest recorded in its checksum sidecar.

        This public method fulfills the Verifier port contract. On mismatch
        the checked file is removed unless `discard` is False, so a corrupt
        download never survives under any name.

        Args:
            staged_file: The file to verify.
            checksum_file: The sidecar holding the expected digest.
            discard: Whether to delete the file when verification fails.

        Raises:
            IntegrityError: If the digests differ.
        """

        expected = expected_digest(checksum_file)
        actual = await self._calculate_sha256(staged_file)

        if actual != expected:
            self.logger.error(f"SHA256 mismatch for {staged_file.name}")
            self.logger.error(f"       expected: {expected}")
            self.logger.error(f"       actual  : {actual}")
            if discard:
                self.effects.run(RemoveFile(staged_file))
            raise IntegrityError(staged_file.name, expected, actual)

        self.logger.info(
            f"Checksum for {staged_file.name} verified successfully."
        )
