"""Configuration and logging shared by every command."""
