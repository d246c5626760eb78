"""Maintenance operations over whole key prefixes."""
