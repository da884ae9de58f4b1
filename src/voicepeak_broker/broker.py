"""Synthesis broker: one context object wiring every component together.

The broker is constructed once at startup and handed to whatever serves
requests. Each broker owns its own queue, supervisor, retry policy, artifact
tracker and narrator cache; nothing is shared through module globals.

Request flow for synthesize():
    1. Narrator checked against the NarratorCache (not queue-gated)
    2. Output path chosen: caller's path, or a new tracked artifact
    3. Job submitted to the SynthesisQueue (one synthesis at a time)
    4. Inside the job, RetryPolicy runs attempts; each attempt runs the
       engine through the ProcessSupervisor and verifies the output file

Typical usage:
    broker = SynthesisBroker.from_config(load_config(None))
    await broker.start()
    path = await broker.synthesize(SynthesisRequest(text="こんにちは"))
    ...
    broker.cleanup_artifact(path)
    await broker.shutdown()
"""

import asyncio
import logging
import signal
from pathlib import Path

from voicepeak_broker.artifacts import ArtifactTracker
from voicepeak_broker.config import BrokerConfig
from voicepeak_broker.engine import SynthesisRequest, VoicepeakEngine
from voicepeak_broker.errors import UnknownNarrator
from voicepeak_broker.narrators import NarratorCache
from voicepeak_broker.retry import RetryPolicy
from voicepeak_broker.supervisor import ProcessSupervisor
from voicepeak_broker.synthesis_queue import QueueStatus, SynthesisQueue

logger = logging.getLogger(__name__)


class SynthesisBroker:
    """Serialized, retried, time-boxed access to the synthesis engine."""

    def __init__(
        self,
        engine: VoicepeakEngine,
        supervisor: ProcessSupervisor,
        tracker: ArtifactTracker,
        retry: RetryPolicy,
        queue: SynthesisQueue | None = None,
        narrator_ttl: float = 300.0,
    ) -> None:
        self.engine = engine
        self.supervisor = supervisor
        self.tracker = tracker
        self.retry = retry
        self.queue = queue or SynthesisQueue()
        self.narrators = NarratorCache(engine.list_narrators, ttl=narrator_ttl)

        self._started = False
        self._signals_installed: list[signal.Signals] = []
        self.shutdown_requested = asyncio.Event()

    @classmethod
    def from_config(cls, config: BrokerConfig) -> "SynthesisBroker":
        """Build a broker and all its components from configuration."""
        supervisor = ProcessSupervisor(
            max_concurrent=config.process.max_concurrent,
            timeout=config.process.timeout_seconds,
            kill_grace=config.process.kill_grace_seconds,
            debug_marker=config.engine.debug_marker,
        )
        engine = VoicepeakEngine(
            supervisor,
            path=config.engine.path,
            play_command=config.engine.play_command,
            debug_marker=config.engine.debug_marker,
        )
        tracker = ArtifactTracker(
            directory=config.artifacts.directory,
            prefix=config.artifacts.prefix,
            extension=config.artifacts.extension,
            sweep_interval=config.artifacts.sweep_interval_seconds,
            stale_after=config.artifacts.stale_after_seconds,
        )
        retry = RetryPolicy(
            max_attempts=config.retry.max_attempts,
            delay=config.retry.delay_seconds,
        )
        return cls(
            engine=engine,
            supervisor=supervisor,
            tracker=tracker,
            retry=retry,
            narrator_ttl=config.narrators.ttl_seconds,
        )

    async def start(self, install_signal_handlers: bool = False) -> None:
        """Start background work (artifact sweep, optional signal handlers)."""
        if self._started:
            return
        self._started = True
        self.tracker.start()
        if install_signal_handlers:
            self._install_signal_handlers()
        logger.info("Synthesis broker started (engine: %s)", self.engine.path)

    async def shutdown(self) -> None:
        """Stop background work and reclaim every resource the broker owns."""
        logger.info("Shutting down synthesis broker")
        self.queue.clear()
        await self.tracker.stop()
        self.supervisor.terminate_all()
        self.tracker.cleanup_all()
        self._remove_signal_handlers()
        self._started = False

    async def synthesize(self, request: SynthesisRequest) -> Path:
        """Synthesize speech and return the output file path.

        Raises:
            UnknownNarrator: Narrator is not offered by the engine.
            SynthesisExhausted: Every attempt failed.
            QueueCancelled: Queue was cleared before the job started.
        """
        if not await self.narrators.is_valid(request.narrator):
            raise UnknownNarrator(request.narrator or "")

        output_path = request.output_path or self.tracker.create()
        args = self.engine.synthesis_args(request, output_path)

        async def attempt() -> Path:
            await self.engine.synthesize(args)
            self.tracker.ensure_exists(output_path)
            return output_path

        started = False

        async def job() -> Path:
            nonlocal started
            started = True
            try:
                return await self.retry.run(attempt)
            except BaseException:
                # Untracked caller paths are left alone by cleanup().
                self.tracker.cleanup(output_path)
                raise

        try:
            return await self.queue.submit(job)
        except BaseException:
            # A running job keeps its artifact tracked until the engine exits.
            if not started:
                self.tracker.cleanup(output_path)
            raise

    async def play(self, path: Path) -> None:
        """Play an audio file. Subject to the process cap, not the queue."""
        await self.engine.play(path)

    async def synthesize_and_play(self, request: SynthesisRequest) -> None:
        """Synthesize, play, then reclaim the generated file."""
        path = await self.synthesize(request)
        try:
            await self.play(path)
        finally:
            self.cleanup_artifact(path)

    async def list_narrators(self) -> list[str]:
        """List narrators straight from the engine."""
        return await self.engine.list_narrators()

    async def list_emotions(self, narrator: str) -> list[str]:
        """List emotions for a narrator.

        Raises:
            UnknownNarrator: Narrator is not offered by the engine.
        """
        if not await self.narrators.is_valid(narrator):
            raise UnknownNarrator(narrator)
        return await self.engine.list_emotions(narrator)

    async def is_valid_narrator(self, name: str | None) -> bool:
        """Cached narrator validity check."""
        return await self.narrators.is_valid(name)

    def queue_status(self) -> QueueStatus:
        """Get synthesis queue status."""
        return self.queue.status()

    def clear_queue(self) -> int:
        """Cancel every synthesis job that has not started yet."""
        return self.queue.clear()

    def cleanup_artifact(self, path: str | Path) -> None:
        """Delete a generated file once the consumer is done with it."""
        self.tracker.cleanup(path)

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                logger.debug("Signal handlers not supported on this loop")
                return
            self._signals_installed.append(sig)

    def _remove_signal_handlers(self) -> None:
        if not self._signals_installed:
            return
        loop = asyncio.get_running_loop()
        for sig in self._signals_installed:
            loop.remove_signal_handler(sig)
        self._signals_installed.clear()

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("Signal %s received, cleaning up artifacts", sig.name)
        self.queue.clear()
        self.supervisor.terminate_all()
        self.tracker.cleanup_all()
        self.shutdown_requested.set()
