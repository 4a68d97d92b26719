"""Document change triggers."""
