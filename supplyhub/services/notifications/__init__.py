"""In-app notifications and their post-commit dispatch."""
