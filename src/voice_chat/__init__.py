"""Hands-free voice conversation client for a remote chat assistant."""

from . import audio, capture, config, conversation, output, speech

__all__ = ["audio", "capture", "config", "conversation", "output", "speech"]
