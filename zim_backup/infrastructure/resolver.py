"""HTTP implementation of the Resolver port."""

import posixpath
from typing import List, Optional, Sequence
from urllib.parse import unquote, urlsplit

import httpx
from bs4 import BeautifulSoup

from ..application.domain import (
    SNAPSHOT_EXTENSION,
    Mirror,
    Resolver,
    SnapshotReference,
    dated_snapshot_pattern,
    snapshot_version,
)
from ..application.exceptions import ResolutionError

from .base_client import BaseClient


def _url_filename(url: str) -> str:
    return unquote(posixpath.basename(urlsplit(url).path))


def latest_filenames(listing: str, edition: str) -> List[str]:
    """
    Extracts the dated snapshot names linked from a directory index page.

    Returns the distinct matching names, oldest to newest.
    """
    pattern = dated_snapshot_pattern(edition)
    soup = BeautifulSoup(listing, "html.parser")
    names = {
        name
        for name in (_url_filename(a["href"]) for a in soup.find_all("a", href=True))
        if pattern.fullmatch(name)
    }
    return sorted(names, key=lambda name: snapshot_version(name, edition))


class HttpResolver(BaseClient, Resolver):
    """Resolves the 'latest' alias by following its redirects, then directory listing."""

    async def _follow_latest_alias(self, base: str, edition: str) -> Optional[str]:
        """
        Tier 1: follow the `_latest` alias through its redirect chain.

        The first dated snapshot URL along the chain is the candidate; it is
        accepted only if the chain ends in a successful response.
        """
        alias_url = f"{base}/{edition}_latest.{SNAPSHOT_EXTENSION}"
        try:
            response = await self.request("HEAD", alias_url, follow_redirects=True)
        except httpx.TooManyRedirects:
            self.logger.info(f"Redirect loop at {alias_url}.")
            return None

        if not response.history:
            self.logger.info(
                f"No redirect from {alias_url} (HTTP {response.status_code})."
            )
            return None

        visited = [str(hop.url) for hop in response.history[1:]]
        visited.append(str(response.url))
        candidate = next(
            (
                url for url in visited
                if snapshot_version(_url_filename(url), edition) is not None
            ),
            None,
        )
        if candidate is None:
            self.logger.info(
                f"Redirects from {alias_url} reach no dated snapshot."
            )
            return None

        if not response.is_success:
            self.logger.info(
                f"Redirect target {candidate} is not reachable "
                f"(HTTP {response.status_code})."
            )
            return None

        return candidate

    async def _scan_listing(self, base: str, edition: str) -> Optional[str]:
        """Tier 2: pick the newest dated snapshot linked from `{base}/`."""
        response = await self.request("GET", f"{base}/", follow_redirects=True)
        if not response.is_success:
            self.logger.info(
                f"Directory listing {base}/ unavailable "
                f"(HTTP {response.status_code})."
            )
            return None

        candidates = latest_filenames(response.text, edition)
        if not candidates:
            self.logger.info(f"No {edition} snapshots listed at {base}/.")
            return None

        return f"{base}/{candidates[-1]}"

    async def _resolve_mirror(self, mirror: Mirror, edition: str) -> Optional[str]:
        base = mirror.base_url
        for tier in (self._follow_latest_alias, self._scan_listing):
            try:
                url = await tier(base, edition)
            except httpx.HTTPError as e:
                self.logger.warning(f"{tier.__name__} failed for {base}: {e}")
                continue
            if url:
                return url
        return None

    async def resolve(
        self, mirrors: Sequence[Mirror], edition: str
    ) -> SnapshotReference:
        """
        Resolves the latest dated snapshot, trying mirrors in rank order.

        Each mirror is asked for a redirect from `{edition}_latest.zim` first;
        when that yields no reachable dated target, its directory listing is
        scanned instead. The first mirror to resolve wins.

        Args:
            mirrors: The configured mirrors.
            edition: The archive variant, e.g. 'wikipedia_en_all_maxi'.

        Returns:
            The reference to the resolved snapshot.

        Raises:
            ResolutionError: If no mirror yields a usable URL.
        """

        for mirror in sorted(mirrors, key=lambda m: m.rank):
            self.logger.info(f"Resolving latest {edition} from {mirror.url}...")
            url = await self._resolve_mirror(mirror, edition)
            if url:
                self.logger.info(f"Resolved latest {edition}: {url}")
                return SnapshotReference(url=url, mirror=mirror)
            self.logger.warning(f"Mirror {mirror.url} did not resolve.")

        raise ResolutionError(
            f"Could not resolve latest {edition} URL from "
            f"{len(mirrors)} mirror(s)."
        )
