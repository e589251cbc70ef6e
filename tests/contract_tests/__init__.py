"""Contract and property tests."""
