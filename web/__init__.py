"""JSON web API."""
