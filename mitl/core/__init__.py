"""Core — models, services, persistence and reliability primitives."""
