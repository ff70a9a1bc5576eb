"""Needle-in-a-haystack benchmarking and multi-model conversations across LLM providers."""

__version__ = "0.1.0"
