"""Core data models and image encoding."""
