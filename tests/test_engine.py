"""Tests for the VOICEPEAK engine adapter."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from voicepeak_broker.engine import (
    SynthesisRequest,
    VoicepeakEngine,
    format_emotion,
    parse_list_output,
)


class TestSynthesisArgs:
    """Tests for argument building."""

    def test_minimal_request(self) -> None:
        """Test that defaults add no optional flags."""
        args = VoicepeakEngine.synthesis_args(SynthesisRequest(text="hello"), Path("/tmp/a.wav"))
        assert args == ["-s", "hello", "-o", "/tmp/a.wav"]

    def test_full_request(self) -> None:
        """Test every optional flag."""
        request = SynthesisRequest(
            text="hello",
            narrator="Japanese Female 1",
            emotion={"happy": 50, "sad": 20},
            speed=120,
            pitch=-50,
        )
        args = VoicepeakEngine.synthesis_args(request, Path("/tmp/a.wav"))
        assert args == [
            "-s",
            "hello",
            "-o",
            "/tmp/a.wav",
            "-n",
            "Japanese Female 1",
            "-e",
            "happy=50,sad=20",
            "--speed",
            "120",
            "--pitch",
            "-50",
        ]

    def test_format_emotion(self) -> None:
        """Test key=value rendering."""
        assert format_emotion({"happy": 100}) == "happy=100"
        assert format_emotion({}) == ""


class TestParseListOutput:
    """Tests for list output parsing."""

    def test_strips_blank_and_debug_lines(self) -> None:
        """Test that only real entries remain, trimmed."""
        output = "[debug] starting\n Japanese Female 1 \n\nJapanese Male 1\n"
        assert parse_list_output(output) == ["Japanese Female 1", "Japanese Male 1"]


class TestVoicepeakEngine:
    """Tests for VoicepeakEngine invocations."""

    @pytest.fixture
    def supervisor(self) -> MagicMock:
        """Create a supervisor whose run() is mocked."""
        supervisor = MagicMock()
        supervisor.run = AsyncMock(return_value="")
        return supervisor

    @pytest.fixture
    def engine(self, supervisor: MagicMock) -> VoicepeakEngine:
        """Create engine around the mocked supervisor."""
        return VoicepeakEngine(supervisor, path="/opt/voicepeak", play_command="afplay")

    @pytest.mark.asyncio
    async def test_list_narrators(self, engine: VoicepeakEngine, supervisor: MagicMock) -> None:
        """Test narrator listing command and parsing."""
        supervisor.run.return_value = "[debug] x\nJapanese Female 1\n"

        assert await engine.list_narrators() == ["Japanese Female 1"]
        supervisor.run.assert_awaited_once_with("/opt/voicepeak", ["--list-narrator"])

    @pytest.mark.asyncio
    async def test_list_emotions(self, engine: VoicepeakEngine, supervisor: MagicMock) -> None:
        """Test emotion listing command and parsing."""
        supervisor.run.return_value = "happy\nsad\n"

        assert await engine.list_emotions("Japanese Female 1") == ["happy", "sad"]
        supervisor.run.assert_awaited_once_with(
            "/opt/voicepeak", ["--list-emotion", "Japanese Female 1"]
        )

    @pytest.mark.asyncio
    async def test_play(self, engine: VoicepeakEngine, supervisor: MagicMock) -> None:
        """Test playback goes through the supervisor with the play command."""
        await engine.play(Path("/tmp/a.wav"))
        supervisor.run.assert_awaited_once_with("afplay", ["/tmp/a.wav"])
