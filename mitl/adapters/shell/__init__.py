"""Shell adapter — subprocess-backed command runner."""
