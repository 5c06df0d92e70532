"""
deployhook - Webhook-triggered deployment runner

Runs the scripted steps configured for an app/environment when an
authenticated request asks for it, and keeps a daily log of every run.
"""

__version__ = "0.1.0"


__all__ = ["DeployhookConfig", "load_config", "get_deployhook_home"]

from .config import DeployhookConfig, load_config, get_deployhook_home
