"""wingetctl — orchestration and parsing core for the winget CLI."""

__version__ = "0.1.0"
