"""Default adapters for the engine's ports."""
