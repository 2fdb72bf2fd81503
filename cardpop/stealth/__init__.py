"""Browser-mimicking headers and session warm-up."""
