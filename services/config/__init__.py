"""Configuration: environment-driven settings (env.py) and logging setup (logging.py)."""
