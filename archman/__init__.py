"""archman — declarative reconciliation of an Arch Linux host."""

__version__ = "0.1.0"
