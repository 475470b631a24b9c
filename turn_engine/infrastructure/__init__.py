"""Infrastructure layer - backends, configuration, retry and local state."""
