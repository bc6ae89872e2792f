"""Configuration — settings loader."""
