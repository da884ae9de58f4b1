"""VOICEPEAK synthesis broker.

Turns the single-instance VOICEPEAK command-line engine into a dependable
service: synthesis requests are serialized, retried, time-boxed, and their
output files tracked and reclaimed.

Components:
    - synthesis_queue.py: FIFO queue running one synthesis at a time
    - supervisor.py: Process spawning with admission cap and timeout escalation
    - retry.py: Bounded retry policy
    - artifacts.py: Temporary output file lifecycle
    - narrators.py: TTL, single-flight narrator list cache
    - engine.py: VOICEPEAK argument vocabulary and output parsing
    - broker.py: Composition of the above into one context object

Typical usage:
    from voicepeak_broker import SynthesisBroker, SynthesisRequest, load_config

    async def main():
        broker = SynthesisBroker.from_config(load_config())
        await broker.start()

        path = await broker.synthesize(SynthesisRequest(text="hello", narrator="Japanese Female 1"))
        await broker.play(path)
        broker.cleanup_artifact(path)

        await broker.shutdown()
"""

from voicepeak_broker.artifacts import ArtifactTracker, TempArtifact
from voicepeak_broker.broker import SynthesisBroker
from voicepeak_broker.config import BrokerConfig, load_config
from voicepeak_broker.engine import SynthesisRequest, VoicepeakEngine
from voicepeak_broker.errors import (
    AdmissionRejected,
    ArtifactMissing,
    BrokerError,
    ErrorCode,
    MetadataFetchFailed,
    ProcessFailed,
    ProcessSpawnFailed,
    ProcessTimeout,
    QueueCancelled,
    SynthesisExhausted,
    UnknownNarrator,
    describe_error,
)
from voicepeak_broker.narrators import NarratorCache
from voicepeak_broker.retry import RetryPolicy
from voicepeak_broker.supervisor import ProcessSupervisor, TerminationToken
from voicepeak_broker.synthesis_queue import QueueStatus, SynthesisQueue

__version__ = "0.1.0"

__all__ = [
    # Composition
    "SynthesisBroker",
    "BrokerConfig",
    "load_config",
    # Components
    "SynthesisQueue",
    "QueueStatus",
    "ProcessSupervisor",
    "TerminationToken",
    "RetryPolicy",
    "ArtifactTracker",
    "TempArtifact",
    "NarratorCache",
    "VoicepeakEngine",
    "SynthesisRequest",
    # Errors
    "BrokerError",
    "ErrorCode",
    "AdmissionRejected",
    "ProcessTimeout",
    "ProcessFailed",
    "ProcessSpawnFailed",
    "SynthesisExhausted",
    "ArtifactMissing",
    "QueueCancelled",
    "MetadataFetchFailed",
    "UnknownNarrator",
    "describe_error",
]
