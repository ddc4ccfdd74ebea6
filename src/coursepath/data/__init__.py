"""Package data for coursepath (database schema)."""
