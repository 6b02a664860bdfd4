"""Linkhop API service: short link creation and redirects."""
