"""Lifecycle tracking for generated audio files.

The tracker hands out unique paths in the temporary directory, remembers
which paths it handed out, and only ever deletes those. Paths supplied by
callers are never touched, even when cleanup is requested for them.

Typical usage:
    tracker = ArtifactTracker(directory=Path(tempfile.gettempdir()))
    tracker.start()  # periodic stale sweep

    path = tracker.create()
    ...  # engine writes the file
    tracker.ensure_exists(path)
    ...
    tracker.cleanup(path)

    await tracker.stop()
"""

import asyncio
import errno
import logging
import stat
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from voicepeak_broker.errors import ArtifactMissing

logger = logging.getLogger(__name__)


@dataclass
class TempArtifact:
    """A path created by the tracker.

    Attributes:
        path: Location of the (future) output file.
        created_at: Wall-clock time the path was handed out.
    """

    path: Path
    created_at: float


class ArtifactTracker:
    """Creates, verifies and reclaims temporary output files.

    Attributes:
        directory: Directory new paths are created in.
        prefix: Default file name prefix.
        extension: File extension including the dot.
        sweep_interval: Seconds between stale sweeps.
        stale_after: Age in seconds after which a tracked file is abandoned.
    """

    def __init__(
        self,
        directory: Path,
        prefix: str = "voicepeak-mcp",
        extension: str = ".wav",
        sweep_interval: float = 300.0,
        stale_after: float = 3600.0,
    ) -> None:
        self.directory = Path(directory)
        self.prefix = prefix
        self.extension = extension
        self.sweep_interval = sweep_interval
        self.stale_after = stale_after

        self._artifacts: dict[Path, TempArtifact] = {}
        self._sweep_task: asyncio.Task | None = None

    @property
    def tracked_count(self) -> int:
        """Number of paths currently tracked."""
        return len(self._artifacts)

    def is_tracked(self, path: str | Path) -> bool:
        """Check whether the tracker created this path."""
        return Path(path) in self._artifacts

    def create(self, prefix: str | None = None) -> Path:
        """Reserve a unique output path.

        The file itself is not created; the engine writes it.

        Args:
            prefix: File name prefix. Defaults to the tracker prefix.

        Returns:
            Absolute path inside the tracker directory.
        """
        now = time.time()
        name = f"{prefix or self.prefix}-{int(now * 1000)}-{uuid.uuid4()}{self.extension}"
        path = self.directory / name
        self._artifacts[path] = TempArtifact(path=path, created_at=now)
        logger.debug("Tracking artifact %s", path)
        return path

    def ensure_exists(self, path: str | Path) -> None:
        """Verify that a run produced a regular file at path.

        Raises:
            ArtifactMissing: If the path is absent or not a regular file.
        """
        try:
            st = Path(path).stat()
        except FileNotFoundError:
            raise ArtifactMissing(str(path), "Temporary file was not created") from None

        if not stat.S_ISREG(st.st_mode):
            raise ArtifactMissing(str(path), "Temporary file creation failed")

    def cleanup(self, path: str | Path) -> None:
        """Delete a tracked file and stop tracking it.

        Requests for paths the tracker did not create are ignored. A file that
        is already gone is not an error.
        """
        path = Path(path)
        if path not in self._artifacts:
            logger.debug("Ignoring cleanup of untracked path %s", path)
            return

        try:
            path.unlink()
            logger.debug("Deleted artifact %s", path)
        except OSError as e:
            if e.errno != errno.ENOENT:
                logger.error("Failed to delete temp file %s: %s", path, e)
        finally:
            self._artifacts.pop(path, None)

    def cleanup_all(self) -> None:
        """Delete every tracked file. Used on shutdown.

        Unlinking is synchronous, so paths are removed one after another;
        a failure on one path is logged and does not stop the rest.
        """
        for path in list(self._artifacts):
            self.cleanup(path)

    def sweep_stale(self, now: float | None = None) -> int:
        """Delete tracked files whose last modification is too old.

        Tracked paths that never materialised are dropped once they are
        older than the stale age themselves.

        Args:
            now: Current wall-clock time (defaults to time.time()).

        Returns:
            Number of paths reclaimed.
        """
        now = time.time() if now is None else now
        reclaimed = 0

        for path, artifact in list(self._artifacts.items()):
            try:
                mtime = path.stat().st_mtime
            except OSError:
                if now - artifact.created_at > self.stale_after:
                    self._artifacts.pop(path, None)
                    reclaimed += 1
                continue

            if now - mtime > self.stale_after:
                self.cleanup(path)
                reclaimed += 1

        if reclaimed:
            logger.info("Stale sweep reclaimed %d artifact(s)", reclaimed)
        return reclaimed

    def start(self) -> None:
        """Start the periodic stale sweep on the running loop."""
        if self._sweep_task is None:
            self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the periodic stale sweep."""
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None

    async def _sweep_loop(self) -> None:
        logger.info("Artifact sweep started (interval: %ds)", int(self.sweep_interval))
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep_stale()
            except Exception as e:
                logger.error("Artifact sweep error: %s", e)
