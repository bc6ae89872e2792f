"""mitl — pick the fastest container engine on this host."""

__version__ = "0.1.0"
