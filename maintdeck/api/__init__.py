"""HTTP configuration endpoint."""
