"""Pytest configuration and shared fixtures."""

from hypothesis import settings

# Create a profile named "no_deadline" with deadline disabled.
#
# Store-backed properties run SQLite on worker threads and are not timed.
settings.register_profile("no_deadline", deadline=None)
settings.load_profile("no_deadline")
