"""Policy: registry configuration resolved from the config directory."""
