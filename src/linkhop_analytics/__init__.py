"""Linkhop Analytics service: click event consumption and storage."""
