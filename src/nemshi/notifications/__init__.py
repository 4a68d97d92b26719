"""Push notification dispatch."""
