"""Request and response DTOs for the v1 API."""
