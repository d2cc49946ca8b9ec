"""Turn platform input into a Trigger and a base version."""
