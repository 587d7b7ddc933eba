"""HTTP API for the approval engine."""
