"""Rate-limited, retrying gateway in front of a hosted language model."""

__version__ = "0.1.0"
