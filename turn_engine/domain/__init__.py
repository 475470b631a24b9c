"""Domain layer - Pure business logic with no transport dependencies."""
