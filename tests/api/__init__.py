"""HTTP adapter tests."""
