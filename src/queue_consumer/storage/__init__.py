"""SQLite storage for the persistent queue backend."""
