"""Document database models."""
