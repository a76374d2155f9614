"""HTTP API for the forum mirror."""
