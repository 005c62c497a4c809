"""Infrastructure: settings, database, cache, live events and errors."""
