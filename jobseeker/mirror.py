"""Best-effort full-file copy of the store to a sync location (USB stick, cloud folder)."""
from __future__ import annotations

import os
import shutil
from pathlib import Path

from jobseeker.errors import SyncMirrorError
from jobseeker.log import get_logger

log = get_logger(__name__)


class SyncMirror:
    """Copies *source* to *target* after every committed store mutation.

    *target* may name a file or an existing directory (the store's file name
    is then kept). Missing target directories are not created: an unplugged
    drive must not turn into a new folder on the mount point. Failures are
    logged and reported through the return value; the local store stays the
    source of truth.
    """

    def __init__(self, source: Path | None, target: str | Path | None = None) -> None:
        self.source = Path(source) if source else None
        self.target = target
        self.last_error: SyncMirrorError | None = None

    @property
    def target(self) -> Path | None:
        return self._target

    @target.setter
    def target(self, value: str | Path | None) -> None:
        text = str(value).strip() if value else ""
        self._target = Path(text).expanduser() if text else None

    @property
    def enabled(self) -> bool:
        return self.source is not None and self._target is not None

    def destination(self) -> Path | None:
        if not self.enabled:
            return None
        if self._target.is_dir():
            return self._target / self.source.name
        return self._target

    def copy(self) -> Path:
        """Copy now; raises ``SyncMirrorError``."""
        dest = self.destination()
        if dest is None:
            raise SyncMirrorError("no sync target configured")
        if dest.resolve() == self.source.resolve():
            raise SyncMirrorError(f"sync target {dest} is the store itself")
        if not dest.parent.is_dir():
            raise SyncMirrorError(f"sync directory {dest.parent} is not available")
        partial = dest.with_name(f".{dest.name}.partial")
        try:
            shutil.copyfile(self.source, partial)
            os.replace(partial, dest)
        except OSError as exc:
            try:
                partial.unlink()
            except OSError:
                pass
            raise SyncMirrorError(f"copy to {dest} failed: {exc}") from exc
        return dest

    def mirror(self) -> bool:
        if not self.enabled:
            return False
        try:
            dest = self.copy()
        except SyncMirrorError as exc:
            self.last_error = exc
            log.error("Sync mirror failed (local store unaffected): %s", exc)
            return False
        self.last_error = None
        log.debug("Mirrored %s → %s", self.source, dest)
        return True
