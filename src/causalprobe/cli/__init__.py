"""Command-line interface for causalprobe."""
