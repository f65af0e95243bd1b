"""Configuration module for the IAM bulk import service."""
from .settings import AppConfig, get_settings, load_settings, reset_settings

__all__ = ["AppConfig", "get_settings", "load_settings", "reset_settings"]
