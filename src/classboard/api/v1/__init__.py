"""Version 1 of the Classboard HTTP API."""
