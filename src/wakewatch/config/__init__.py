"""YAML configuration and live preferences."""
