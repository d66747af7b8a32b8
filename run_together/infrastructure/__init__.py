"""Adapters and configuration for the race engine."""
