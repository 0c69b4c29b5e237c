"""Dreamweaver: streamed AI storytelling with narration, illustrations and mood music."""

__version__ = "0.1.0"
