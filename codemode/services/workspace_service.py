# -*- coding: utf-8 -*-
"""Location: ./codemode/services/workspace_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0

Workspace Service.

Materialises a session workspace: the worker bootstrap (``runner.py``) and
a view of the generated stub tree (``servers``) that user code imports
from. The view is a symlink to the canonical tree where the platform
allows one, otherwise a recursive copy.

Only permission-class and unsupported-operation failures fall back to
copying; any other filesystem error propagates.
"""

# Standard
import asyncio
from enum import Enum
import errno
from pathlib import Path
import shutil
from typing import Union

# First-Party
from codemode.sandbox import bootstrap
from codemode.services.logging_service import LoggingService

logger = LoggingService().get_logger(__name__)

RUNNER_FILENAME = "runner.py"
STUB_TREE_LINK = "servers"

_FALLBACK_ERRNOS = {errno.EPERM, errno.EACCES, errno.ENOSYS, errno.EOPNOTSUPP, getattr(errno, "ENOTSUP", errno.EOPNOTSUPP)}


class StubTreeOutcome(str, Enum):
    """How the stub tree view was provided to a workspace."""

    LINKED = "linked"
    COPIED = "copied"
    EXISTING = "existing"
    SKIPPED = "skipped"


def _should_copy_instead(exc: OSError) -> bool:
    """Return True for link failures that a copy can work around.

    Examples:
        >>> _should_copy_instead(PermissionError(errno.EPERM, "Operation not permitted"))
        True
        >>> _should_copy_instead(OSError(errno.EOPNOTSUPP, "Operation not supported"))
        True
        >>> _should_copy_instead(OSError(errno.ENOSPC, "No space left on device"))
        False
    """
    return isinstance(exc, PermissionError) or exc.errno in _FALLBACK_ERRNOS


class WorkspacePreparer:
    """Lays out the reusable parts of a session workspace."""

    def __init__(self, stub_tree_dir: Union[str, Path]) -> None:
        """Create a preparer.

        Args:
            stub_tree_dir: Canonical generated ``servers`` directory.
        """
        self.stub_tree_dir = Path(stub_tree_dir).resolve()
        self.bootstrap_source = Path(bootstrap.__file__)

    async def prepare(self, workspace_root: Union[str, Path]) -> StubTreeOutcome:
        """Create the workspace directory, runner and stub tree view.

        Safe to call repeatedly on the same workspace.

        Args:
            workspace_root: Workspace directory; created if missing.

        Returns:
            StubTreeOutcome: How the stub tree was provided.
        """
        root = Path(workspace_root)
        return await asyncio.to_thread(self._prepare_sync, root)

    def _prepare_sync(self, root: Path) -> StubTreeOutcome:
        root.mkdir(parents=True, exist_ok=True)
        self._write_runner(root)
        outcome = self._provide_stub_tree(root / STUB_TREE_LINK)
        logger.debug(f"Prepared workspace {root} (stub tree {outcome.value})")
        return outcome

    def _write_runner(self, root: Path) -> None:
        target = root / RUNNER_FILENAME
        source = self.bootstrap_source.read_text(encoding="utf-8")
        if target.exists() and target.read_text(encoding="utf-8") == source:
            return
        target.write_text(source, encoding="utf-8")

    def _provide_stub_tree(self, destination: Path) -> StubTreeOutcome:
        # A dangling link counts as unusable; lexists() alone would accept it
        if destination.exists():
            return StubTreeOutcome.EXISTING
        if not self.stub_tree_dir.is_dir():
            logger.debug(f"Stub tree {self.stub_tree_dir} not generated yet; workspace has no servers package")
            return StubTreeOutcome.SKIPPED
        if destination.is_symlink():
            destination.unlink()

        try:
            destination.symlink_to(self.stub_tree_dir, target_is_directory=True)
            return StubTreeOutcome.LINKED
        except FileExistsError:
            return StubTreeOutcome.EXISTING
        except OSError as exc:
            if not _should_copy_instead(exc):
                raise
            logger.info(f"Cannot symlink stub tree ({exc}); copying instead")

        try:
            shutil.copytree(self.stub_tree_dir, destination)
        except FileExistsError:
            return StubTreeOutcome.EXISTING
        return StubTreeOutcome.COPIED
