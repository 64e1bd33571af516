"""Service layer wiring the lifecycle to Discord."""
