"""Release-version lifecycle gate for pull requests, candidates and tags."""

__version__ = "0.1.0"
