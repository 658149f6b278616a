"""Session-scoped persistence of uploaded assets."""
