"""Infrastructure adapters backing the persistent store."""
