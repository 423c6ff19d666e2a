"""Small shared utilities (logging/metrics IO, pytree helpers)."""
