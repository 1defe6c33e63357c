"""Command-line interface for snakey."""
