"""studiobridge - command bridge between automation agents and a studio editor plugin."""

__version__ = "1.1.0"
__logo__ = "🧱"
