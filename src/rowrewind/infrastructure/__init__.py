"""Infrastructure layer: database access, change log storage and capture hooks."""
