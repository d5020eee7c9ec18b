"""Route modules mounted by bookops.api.router."""
