"""Configuration for the calling agent."""
