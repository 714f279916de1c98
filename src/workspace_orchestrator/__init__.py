"""Multi-repository workspace provisioning and cleanup for task attempts."""

__version__ = "0.1.0"
