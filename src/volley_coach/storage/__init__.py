"""SQLite persistence for pipeline artifacts and usage accounting."""
