"""Core subsystems: destination policy, auth, caching and the API gateway."""
