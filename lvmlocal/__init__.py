"""Node-local LVM volume helpers: lvm commands, IO limits, scheduling, capacity and usage."""

__version__ = "0.1.0"
__all__ = ["capacity", "controller", "endpoint", "iolimit", "lvm", "params", "stats"]