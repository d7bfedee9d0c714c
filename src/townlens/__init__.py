"""townlens: municipality comparison reports from official Japanese statistics."""

__version__ = "0.1.0"
