"""Domain helpers shared across layers (serialization)."""
