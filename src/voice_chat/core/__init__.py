"""Shared primitives: exceptions, named timers, and task tracking."""
