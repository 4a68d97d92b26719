"""Friend profiles and walk summaries."""
