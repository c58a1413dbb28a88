"""Background wake monitoring."""
