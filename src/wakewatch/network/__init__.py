"""Network interface event sources."""
