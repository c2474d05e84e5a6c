"""End-to-end runs of the backup pipeline against a mock mirror."""

import asyncio
import hashlib
import logging
import os

import httpx
import pytest

from zim_backup.application.domain import Mirror, alias_path
from zim_backup.application.effects import EffectRunner
from zim_backup.application.exceptions import IntegrityError, ResolutionError
from zim_backup.application.service import SnapshotBackupService
from zim_backup.infrastructure.downloader import HttpDownloader
from zim_backup.infrastructure.filesystem import FilesystemPublisher, SnapshotRetention
from zim_backup.infrastructure.hashing import Sha256Verifier, expected_digest
from zim_backup.infrastructure.resolver import HttpResolver

from tests.conftest import EDITION, MIRROR_A, RecordingHandler, sha256_hex

LATEST = f"{EDITION}_2025-08.zim"
LATEST_URL = f"{MIRROR_A}/{LATEST}"
PAYLOAD = b"zim archive contents " * 50


def _mirror_routes(payload=PAYLOAD, digest=None, torrent=True):
    routes = {
        ("HEAD", f"{MIRROR_A}/{EDITION}_latest.zim"): lambda r: httpx.Response(
            302, headers={"Location": LATEST_URL}
        ),
        ("HEAD", LATEST_URL): lambda r: httpx.Response(200),
        ("GET", LATEST_URL): lambda r: httpx.Response(200, content=payload),
        ("GET", f"{LATEST_URL}.sha256"): lambda r: httpx.Response(
            200, text=f"{digest or sha256_hex(payload)}  {LATEST}\n"
        ),
    }
    if torrent:
        routes[("GET", f"{LATEST_URL}.torrent")] = lambda r: httpx.Response(
            200, content=b"d8:announce0:e"
        )
    return routes


@pytest.fixture
def build_service(policy, make_client, tmp_path):
    def _build(handler, dry_run=False, keep=4, grab_torrent=True, force_check=False):
        client = make_client(handler)
        effects = EffectRunner(dry_run=dry_run)
        return SnapshotBackupService(
            resolver=HttpResolver(client, policy),
            downloader=HttpDownloader(client, policy, effects),
            verifier=Sha256Verifier(effects, chunk_size=128),
            publisher=FilesystemPublisher(effects),
            retention=SnapshotRetention(effects),
            effects=effects,
            dest_dir=tmp_path / "zim",
            edition=EDITION,
            mirrors=[Mirror(url=MIRROR_A, rank=0)],
            keep_versions=keep,
            grab_torrent=grab_torrent,
            force_check=force_check,
        )
    return _build


def test_run_publishes_verifies_and_points_alias(build_service, tmp_path):
    handler = RecordingHandler(_mirror_routes())

    snapshot = asyncio.run(build_service(handler).run())

    dest = tmp_path / "zim"
    alias = alias_path(dest, EDITION)
    assert snapshot.path == dest / LATEST
    assert os.readlink(alias) == LATEST
    assert snapshot.torrent_path.read_bytes() == b"d8:announce0:e"
    # The alias resolves to a file matching the sidecar used at publish time.
    assert hashlib.sha256(alias.read_bytes()).hexdigest() == expected_digest(
        snapshot.checksum_path
    )
    assert sorted(p.name for p in dest.iterdir()) == sorted([
        LATEST,
        f"{LATEST}.sha256",
        f"{LATEST}.torrent",
        alias.name,
    ])


def test_second_run_does_not_download_again(build_service, tmp_path):
    first = RecordingHandler(_mirror_routes())
    asyncio.run(build_service(first).run())
    kept_before = sorted(p.name for p in (tmp_path / "zim").iterdir())

    second = RecordingHandler(_mirror_routes())
    asyncio.run(build_service(second).run())

    assert second.urls("GET") == []
    assert sorted(p.name for p in (tmp_path / "zim").iterdir()) == kept_before


def test_digest_mismatch_aborts_without_touching_alias(build_service, tmp_path):
    dest = tmp_path / "zim"
    dest.mkdir()
    previous = dest / f"{EDITION}_2025-07.zim"
    previous.write_bytes(b"previous")
    os.symlink(previous.name, alias_path(dest, EDITION))

    handler = RecordingHandler(_mirror_routes(digest="f" * 64))

    with pytest.raises(IntegrityError) as excinfo:
        asyncio.run(build_service(handler).run())

    assert excinfo.value.exit_code == 3
    assert os.readlink(alias_path(dest, EDITION)) == previous.name
    assert not (dest / LATEST).exists()
    assert not (dest / f"{LATEST}.part").exists()
    assert not (dest / f"{LATEST}.sha256.part").exists()


def test_missing_torrent_is_not_fatal(build_service, tmp_path):
    handler = RecordingHandler(_mirror_routes(torrent=False))

    snapshot = asyncio.run(build_service(handler).run())

    assert snapshot.path.exists()
    assert not snapshot.torrent_path.exists()
    assert not (tmp_path / "zim" / f"{LATEST}.torrent.part").exists()
    assert os.readlink(alias_path(tmp_path / "zim", EDITION)) == LATEST


def test_torrent_skipped_when_disabled(build_service):
    handler = RecordingHandler(_mirror_routes())

    asyncio.run(build_service(handler, grab_torrent=False).run())

    assert f"{LATEST_URL}.torrent" not in handler.urls()


def test_retention_runs_after_publish(build_service, tmp_path):
    dest = tmp_path / "zim"
    dest.mkdir()
    for i, month in enumerate(["2025-05", "2025-06", "2025-07"]):
        path = dest / f"{EDITION}_{month}.zim"
        path.write_bytes(month.encode())
        os.utime(path, (1_700_000_000 + i, 1_700_000_000 + i))

    asyncio.run(build_service(RecordingHandler(_mirror_routes()), keep=2).run())

    remaining = sorted(p.name for p in dest.glob(f"{EDITION}_????-??.zim"))
    assert remaining == [f"{EDITION}_2025-07.zim", LATEST]


def test_resolution_failure_leaves_no_trace(build_service, tmp_path):
    handler = RecordingHandler({})

    with pytest.raises(ResolutionError):
        asyncio.run(build_service(handler).run())

    assert not (tmp_path / "zim").exists()


def test_force_check_detects_corrupt_published_snapshot(build_service, tmp_path):
    asyncio.run(build_service(RecordingHandler(_mirror_routes())).run())
    published = tmp_path / "zim" / LATEST
    published.write_bytes(b"bit rot")

    with pytest.raises(IntegrityError):
        asyncio.run(
            build_service(RecordingHandler(_mirror_routes()), force_check=True).run()
        )

    assert published.exists()


def test_dry_run_mutates_nothing(build_service, tmp_path):
    handler = RecordingHandler(_mirror_routes())

    snapshot = asyncio.run(build_service(handler, dry_run=True).run())

    assert snapshot.path.name == LATEST
    assert handler.urls("GET") == []
    assert not (tmp_path / "zim").exists()


def test_dry_run_does_not_claim_torrent_was_saved(build_service, caplog):
    caplog.set_level(logging.INFO)

    asyncio.run(build_service(RecordingHandler(_mirror_routes()), dry_run=True).run())

    messages = [record.getMessage() for record in caplog.records]
    assert any(m.startswith("DRY-RUN: fetch") and m.endswith(".torrent.part") for m in messages)
    assert not any(m.startswith("Saved:") for m in messages)


def test_dry_run_previews_what_a_real_run_would_prune(build_service, tmp_path, caplog):
    dest = tmp_path / "zim"
    dest.mkdir()
    for i, month in enumerate(["2025-05", "2025-06", "2025-07"]):
        path = dest / f"{EDITION}_{month}.zim"
        path.write_bytes(month.encode())
        os.utime(path, (1_700_000_000 + i, 1_700_000_000 + i))
    caplog.set_level(logging.INFO)

    asyncio.run(
        build_service(RecordingHandler(_mirror_routes()), dry_run=True, keep=2).run()
    )

    removals = [
        record.getMessage() for record in caplog.records
        if record.getMessage().startswith("DRY-RUN: rm -f")
        and record.getMessage().endswith(".zim")
    ]
    assert removals == [
        f"DRY-RUN: rm -f {dest / f'{EDITION}_2025-06.zim'}",
        f"DRY-RUN: rm -f {dest / f'{EDITION}_2025-05.zim'}",
    ]
    assert len(list(dest.iterdir())) == 3
