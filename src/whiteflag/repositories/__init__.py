"""Repository layer for whiteflag request records."""
