"""Infrastructure: database, Redis and locking."""
