"""Session orchestration and output classification for AI coding CLIs."""

__version__ = "0.4.0"
