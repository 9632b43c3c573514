"""agent-conductor command-line interface."""
