"""VOICEPEAK command-line adapter.

Owns the engine's argument vocabulary and the parsing of its list output.
All invocations go through a ProcessSupervisor; this module never spawns
processes itself.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from voicepeak_broker.supervisor import DEBUG_MARKER, ProcessSupervisor

logger = logging.getLogger(__name__)

DEFAULT_SPEED = 100
DEFAULT_PITCH = 0


@dataclass
class SynthesisRequest:
    """One already-validated synthesis request.

    Attributes:
        text: Text to speak.
        narrator: Narrator name; engine default when None.
        emotion: Emotion parameters, e.g. {"happy": 50, "sad": 20}.
        speed: Speech speed (engine default 100).
        pitch: Speech pitch (engine default 0).
        output_path: Caller-chosen output file. A temporary file is used when
            None.
    """

    text: str
    narrator: str | None = None
    emotion: dict[str, int] = field(default_factory=dict)
    speed: int = DEFAULT_SPEED
    pitch: int = DEFAULT_PITCH
    output_path: Path | None = None


def format_emotion(emotion: dict[str, int]) -> str:
    """Render emotion parameters as the engine's key=value list."""
    return ",".join(f"{key}={value}" for key, value in emotion.items())


def parse_list_output(output: str, marker: str = DEBUG_MARKER) -> list[str]:
    """Parse newline-separated list output, dropping blanks and debug lines."""
    return [line.strip() for line in output.split("\n") if line.strip() and marker not in line]


class VoicepeakEngine:
    """Builds engine invocations and runs them through the supervisor.

    Attributes:
        path: Engine executable.
        play_command: Audio playback command.
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        path: str,
        play_command: str = "afplay",
        debug_marker: str = DEBUG_MARKER,
    ) -> None:
        self._supervisor = supervisor
        self.path = path
        self.play_command = play_command
        self.debug_marker = debug_marker

    @staticmethod
    def synthesis_args(request: SynthesisRequest, output_path: Path) -> list[str]:
        """Build the argument list for one synthesis run."""
        args = ["-s", request.text, "-o", str(output_path)]

        if request.narrator:
            args.extend(["-n", request.narrator])
        if request.emotion:
            args.extend(["-e", format_emotion(request.emotion)])
        if request.speed != DEFAULT_SPEED:
            args.extend(["--speed", str(request.speed)])
        if request.pitch != DEFAULT_PITCH:
            args.extend(["--pitch", str(request.pitch)])

        return args

    async def synthesize(self, args: list[str]) -> None:
        """Run the engine once with prebuilt synthesis arguments."""
        await self._supervisor.run(self.path, args)

    async def list_narrators(self) -> list[str]:
        """Ask the engine for its installed narrators."""
        output = await self._supervisor.run(self.path, ["--list-narrator"])
        return parse_list_output(output, self.debug_marker)

    async def list_emotions(self, narrator: str) -> list[str]:
        """Ask the engine for the emotions a narrator supports."""
        output = await self._supervisor.run(self.path, ["--list-emotion", narrator])
        return parse_list_output(output, self.debug_marker)

    async def play(self, path: Path) -> None:
        """Play an audio file with the configured playback command."""
        logger.debug("Playing %s with %s", path, self.play_command)
        await self._supervisor.run(self.play_command, [str(path)])
