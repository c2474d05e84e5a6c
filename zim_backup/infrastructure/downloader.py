"""HTTP implementation of the Downloader port."""

import asyncio
from pathlib import Path

import httpx
from tqdm import tqdm

from ..application.domain import Downloader
from ..application.effects import EffectRunner
from ..application.exceptions import IncompleteTransferError, TransferError

from .base_client import BaseClient
from .config_models import TransferPolicy


class HttpDownloader(BaseClient, Downloader):
    """A downloader that resumes partial files via HTTP range requests."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: TransferPolicy,
        effects: EffectRunner,
    ):
        """Initializes the downloader adapter."""
        super().__init__(client, policy)
        self.effects = effects

    @staticmethod
    def _existing_size(destination: Path) -> int:
        return destination.stat().st_size if destination.exists() else 0

    async def _stream_to_file(
        self, response: httpx.Response, destination: Path, offset: int
    ):
        """Write the response body to the file, appending after `offset`."""
        length = response.headers.get("content-length")
        expected = int(length) if length and length.isdigit() else None
        if response.headers.get("content-encoding"):
            expected = None
        total = offset + expected if expected is not None else None

        received = 0
        with open(destination, "ab" if offset else "wb") as f, tqdm(
            total=total,
            initial=offset,
            unit="B",
            unit_scale=True,
            desc=destination.name,
            disable=not self.policy.progress,
        ) as progress_bar:
            async for chunk in response.aiter_bytes(self.policy.chunk_size):
                await asyncio.to_thread(f.write, chunk)
                received += len(chunk)
                progress_bar.update(len(chunk))

        if expected is not None and received != expected:
            raise IncompleteTransferError(
                f"Size mismatch for {destination.name}: "
                f"{received} != {expected}"
            )

    async def _resume_download(self, url: str, destination: Path):
        """Continue a download from the current length of the staging file."""
        offset = self._existing_size(destination)
        headers = {"Range": f"bytes={offset}-"} if offset else {}

        async with self.client.stream(
            "GET",
            url,
            headers=headers,
            follow_redirects=self.policy.follow_redirects,
        ) as response:
            if offset and response.status_code == 416:
                self.logger.info(f"{destination.name} is already complete.")
                return
            response.raise_for_status()

            if offset and response.status_code != 206:
                self.logger.warning(
                    f"Server ignored range request for {destination.name}; "
                    f"restarting from zero."
                )
                offset = 0
            elif offset:
                self.logger.info(
                    f"Resuming {destination.name} from byte {offset}."
                )

            await self._stream_to_file(response, destination, offset)

    async def fetch(self, url: str, destination: Path) -> int:
        """
        Download a resource to a staging path, resuming any partial file.

        This is the public method that fulfills the Downloader port contract.
        A partial file is kept on failure so the next attempt or run can
        resume it.

        Args:
            url: The resource to download.
            destination: The staging path to write to.

        Returns:
            The number of bytes the file grew by.

        Raises:
            TransferError: If the download fails after all retries.
        """

        if self.effects.intercept(f"fetch {url} -> {destination}"):
            return 0

        self.logger.info(f"Downloading {url}...")
        destination.parent.mkdir(parents=True, exist_ok=True)
        before = self._existing_size(destination)

        try:
            await self.retrying(self._resume_download)(url, destination)
        except TransferError:
            raise
        except (httpx.HTTPError, OSError) as e:
            raise TransferError(f"Failed to fetch {url}: {e}") from e

        written = self._existing_size(destination) - before
        self.logger.info(f"Finished downloading {destination.name}")
        return max(written, 0)
