"""Population search and census normalization."""
