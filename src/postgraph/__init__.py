"""postgraph: incremental build pipeline for front-matter markdown posts."""

__version__ = "0.1.0"
