"""Sensor Logger ingest service: normalization, in-memory window and persistence."""
