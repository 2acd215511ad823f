"""In-memory stand-ins for a Measure Repository Service, used by the tests."""
