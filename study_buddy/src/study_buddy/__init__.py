"""Hinglish study buddy: auth gate, student directory and tutor pipeline."""

__version__ = "1.0.0"
