"""Prompt templates, memory, plan/review agents and an event-stream client for coding agents."""

__version__ = "0.1.0"