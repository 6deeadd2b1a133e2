"""Command line interface for SQLFixture."""
