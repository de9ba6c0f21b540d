"""knotwork - structured editing core for branching-story scripts."""

__version__ = "0.1.0"
