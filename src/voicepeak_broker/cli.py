"""Command-line entry point.

Usage:
    voicepeak-broker [--config path/to/config.yaml] synthesize "text" [--narrator NAME]
        [--emotion happy=50 ...] [--speed 120] [--pitch 50] [--output out.wav] [--play]
    voicepeak-broker narrators
    voicepeak-broker emotions NARRATOR
"""

import argparse
import asyncio
import contextlib
import logging
import sys
from pathlib import Path

from voicepeak_broker.broker import SynthesisBroker
from voicepeak_broker.config import load_config
from voicepeak_broker.engine import DEFAULT_PITCH, DEFAULT_SPEED, SynthesisRequest
from voicepeak_broker.errors import BrokerError, describe_error
from voicepeak_broker.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def parse_emotion(values: list[str] | None) -> dict[str, int]:
    """Parse repeated key=value emotion options."""
    emotion: dict[str, int] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"emotion must be key=value, got: {item}")
        try:
            emotion[key.strip()] = int(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"emotion value must be an integer: {item}") from None
    return emotion


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(description="VOICEPEAK synthesis broker")
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration YAML file",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    synth = subparsers.add_parser("synthesize", help="Synthesize speech from text")
    synth.add_argument("text", help="Text to synthesize")
    synth.add_argument("--narrator", help="Narrator name")
    synth.add_argument(
        "--emotion",
        action="append",
        metavar="KEY=VALUE",
        help="Emotion parameter (repeatable), e.g. happy=50",
    )
    synth.add_argument("--speed", type=int, default=DEFAULT_SPEED, help="Speech speed (50-200)")
    synth.add_argument("--pitch", type=int, default=DEFAULT_PITCH, help="Speech pitch (-300-300)")
    synth.add_argument("--output", type=Path, help="Output WAV path (temporary file if omitted)")
    synth.add_argument("--play", action="store_true", help="Play the result, then delete it")

    subparsers.add_parser("narrators", help="List available narrators")

    emotions = subparsers.add_parser("emotions", help="List emotions for a narrator")
    emotions.add_argument("narrator", help="Narrator name")

    return parser


async def run_command(broker: SynthesisBroker, args: argparse.Namespace) -> None:
    """Execute one parsed command against a started broker."""
    if args.command == "synthesize":
        request = SynthesisRequest(
            text=args.text,
            narrator=args.narrator,
            emotion=parse_emotion(args.emotion),
            speed=args.speed,
            pitch=args.pitch,
            output_path=args.output,
        )
        if args.play:
            await broker.synthesize_and_play(request)
            print("Speech synthesized and played successfully")
        else:
            path = await broker.synthesize(request)
            print(path)

    elif args.command == "narrators":
        for name in await broker.list_narrators():
            print(name)

    elif args.command == "emotions":
        for name in await broker.list_emotions(args.narrator):
            print(name)


async def run(args: argparse.Namespace) -> int:
    """Run a command until it completes or a shutdown signal arrives."""
    config = load_config(args.config)
    setup_logging(config.logging)

    broker = SynthesisBroker.from_config(config)
    await broker.start(install_signal_handlers=True)

    command = asyncio.create_task(run_command(broker, args))
    stop = asyncio.create_task(broker.shutdown_requested.wait())
    try:
        await asyncio.wait({command, stop}, return_when=asyncio.FIRST_COMPLETED)
        if not command.done():
            logger.info("Interrupted")
            command.cancel()
            with contextlib.suppress(asyncio.CancelledError, BrokerError):
                await command
            return 130
        command.result()
        return 0
    except BrokerError as e:
        print(describe_error(e), file=sys.stderr)
        return 1
    finally:
        stop.cancel()
        await broker.shutdown()


def main() -> None:
    """Main entry point."""
    args = build_parser().parse_args()
    try:
        sys.exit(asyncio.run(run(args)))
    except argparse.ArgumentTypeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
