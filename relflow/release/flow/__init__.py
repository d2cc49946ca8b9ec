"""Pipeline sequencing."""
