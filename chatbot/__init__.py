"""Teachable chat service backed by Firestore and Gemini."""

__version__ = "0.1.0"
