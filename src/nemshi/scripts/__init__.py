"""One-off maintenance scripts."""
