"""Settings, logging setup and static reference tables."""
