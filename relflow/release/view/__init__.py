"""Rendering of pipeline runs."""
