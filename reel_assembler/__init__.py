"""Reel Assembler - turns a timed scene plan plus voice, captions and stock media into a vertical short."""

__version__ = "1.0.0"
