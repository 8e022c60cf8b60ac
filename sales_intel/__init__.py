"""Sales intelligence collection and synthesis pipeline."""

__version__ = "0.1.0"
