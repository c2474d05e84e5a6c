"""
Filesystem side effects as explicit, interceptable operations.

Every mutation the pipeline performs on the destination directory is
expressed as an Effect object and handed to an EffectRunner, which either
applies it or, in dry-run mode, only logs what it would have done.
"""

import dataclasses
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)


class Effect(ABC):
    """A single filesystem mutation."""

    @abstractmethod
    def describe(self) -> str:
        pass

    @abstractmethod
    def apply(self):
        pass


@dataclasses.dataclass(frozen=True)
class MakeDirectory(Effect):
    path: Path

    def describe(self) -> str:
        return f"mkdir -p {self.path}"

    def apply(self):
        self.path.mkdir(parents=True, exist_ok=True)


@dataclasses.dataclass(frozen=True)
class MoveFile(Effect):
    """Renames within one filesystem; never a copy followed by a delete."""

    source: Path
    destination: Path

    def describe(self) -> str:
        return f"mv {self.source} {self.destination}"

    def apply(self):
        os.replace(self.source, self.destination)


@dataclasses.dataclass(frozen=True)
class RemoveFile(Effect):
    path: Path

    def describe(self) -> str:
        return f"rm -f {self.path}"

    def apply(self):
        self.path.unlink(missing_ok=True)


@dataclasses.dataclass(frozen=True)
class TouchFile(Effect):
    """Sets a file's modification time to now."""

    path: Path

    def describe(self) -> str:
        return f"touch {self.path}"

    def apply(self):
        os.utime(self.path)


@dataclasses.dataclass(frozen=True)
class ReplaceSymlink(Effect):
    """
    Points `link` at `target` by creating a temporary link and renaming it
    over the old one, so the link path never goes missing.
    """

    link: Path
    target: str

    def describe(self) -> str:
        return f"ln -sfn {self.target} {self.link}"

    def apply(self):
        temporary = self.link.with_name(f".{self.link.name}.tmp")
        temporary.unlink(missing_ok=True)
        os.symlink(self.target, temporary)
        os.replace(temporary, self.link)


class EffectRunner:
    """Applies effects, or logs them when running dry."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def run(self, effect: Effect) -> bool:
        """Returns True if the effect was applied."""
        if self.intercept(effect.describe()):
            return False
        effect.apply()
        return True

    def intercept(self, description: str) -> bool:
        """
        Logs a mutation that is about to happen outside of an Effect object.

        Returns True when running dry, in which case the caller must skip it.
        """
        if self.dry_run:
            logger.info(f"DRY-RUN: {description}")
            return True
        return False
