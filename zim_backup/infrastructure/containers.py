"""
Dependency Injection container for the zim_backup component.

This container uses the `dependency-injector` library to wire together all
the components of the application, such as services and infrastructure
adapters, from the immutable settings built once at startup.
"""

from dependency_injector import containers, providers

from ..application.domain import *
from ..application.effects import EffectRunner
from ..application.service import SnapshotBackupService
from ..settings import load_settings

from .base_client import build_http_client
from .downloader import HttpDownloader
from .filesystem import FilesystemPublisher, SnapshotRetention
from .hashing import Sha256Verifier
from .resolver import HttpResolver


class Container(containers.DeclarativeContainer):
    """DI container for wiring the application components."""

    cli_args = providers.Configuration()

    config = providers.Singleton(load_settings, overrides=cli_args)

    transfer_policy = config.provided.transfer

    effects = providers.Singleton(EffectRunner, dry_run=config.provided.dry_run)

    http_client = providers.Singleton(build_http_client, policy=transfer_policy)

    resolver: providers.Factory[Resolver] = providers.Factory(
        HttpResolver,
        client=http_client,
        policy=transfer_policy,
    )

    downloader: providers.Factory[Downloader] = providers.Factory(
        HttpDownloader,
        client=http_client,
        policy=transfer_policy,
        effects=effects,
    )

    verifier: providers.Factory[Verifier] = providers.Factory(
        Sha256Verifier,
        effects=effects,
        chunk_size=config.provided.hash_chunk_size,
    )

    publisher: providers.Factory[Publisher] = providers.Factory(
        FilesystemPublisher,
        effects=effects,
    )

    retention: providers.Factory[Retention] = providers.Factory(
        SnapshotRetention,
        effects=effects,
    )

    backup_service = providers.Factory(
        SnapshotBackupService,
        resolver=resolver,
        downloader=downloader,
        verifier=verifier,
        publisher=publisher,
        retention=retention,
        effects=effects,
        dest_dir=config.provided.dest_dir,
        edition=config.provided.edition,
        mirrors=config.provided.mirrors,
        keep_versions=config.provided.keep_versions,
        grab_torrent=config.provided.grab_torrent,
        force_check=config.provided.force_check,
    )
