"""Reliability — locking primitives."""
