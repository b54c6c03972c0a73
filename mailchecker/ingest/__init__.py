"""Ingest package - domain list and snapshot file readers."""
