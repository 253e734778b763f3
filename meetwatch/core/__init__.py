"""Core utilities: timezones, configuration, logging and HTTP."""
