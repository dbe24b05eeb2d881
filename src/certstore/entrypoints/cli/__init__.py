"""certstore command-line interface."""
