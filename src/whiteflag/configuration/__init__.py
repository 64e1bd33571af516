"""
Configuration management for whiteflag.

- **app_configuration.py**: YAML loader for global settings (data directory,
  grant duration and bounds, sweep interval, history retention, rules text).
  Missing or malformed values fall back to defaults.
"""
