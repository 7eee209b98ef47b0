"""HTTP routes exposed by the gateway."""
