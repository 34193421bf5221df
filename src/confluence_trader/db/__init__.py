"""Sqlite connection and migration helpers."""
