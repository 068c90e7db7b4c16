"""ait: tabbed remote-shell terminal with predictive command input."""
