"""Test groups making up the Measure Repository Service suite."""
