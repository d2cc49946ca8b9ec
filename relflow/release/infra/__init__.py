"""Adapters for the registry, the artifact store and the opaque steps."""
