"""Walk lifecycle handlers and invite redemption."""
