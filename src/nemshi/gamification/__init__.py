"""Walk stats and badge evaluation."""
