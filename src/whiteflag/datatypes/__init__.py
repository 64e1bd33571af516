"""Plain data types shared across the whiteflag packages."""
