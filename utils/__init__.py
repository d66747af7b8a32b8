"""Shared utilities for the race engine: logging, telemetry and masking."""
