"""Fantastic-Probe - media info descriptors for remote Blu-ray/DVD ISO placeholders."""

__version__ = "1.3.0"
