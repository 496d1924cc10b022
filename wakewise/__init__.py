"""WakeWise: sleep pattern analysis and adaptive wake prediction."""

__version__ = "1.0.0"
