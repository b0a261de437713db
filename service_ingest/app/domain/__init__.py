"""Request-boundary components: bearer authentication and principals."""
