"""Speech output control."""

from .controller import OutputController

__all__ = ["OutputController"]
