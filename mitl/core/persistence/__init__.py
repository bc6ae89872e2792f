"""Persistence — on-disk benchmark score cache."""
