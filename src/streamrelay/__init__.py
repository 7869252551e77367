"""Streaming relay for model chat, tool use, and client reassembly."""

__version__ = "0.1.0"
