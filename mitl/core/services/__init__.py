"""Core services — hardware, discovery, benchmarking, selection, capsules."""
