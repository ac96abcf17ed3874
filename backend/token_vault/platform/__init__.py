"""Cross-cutting platform concerns (errors, correlation IDs)."""
