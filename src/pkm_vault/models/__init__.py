"""Data models for the vault engine."""
