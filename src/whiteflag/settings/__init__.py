"""Per-guild whiteflag configuration (channels and roles)."""
