"""Allow running as python -m voicepeak_broker."""

from voicepeak_broker.cli import main

main()
