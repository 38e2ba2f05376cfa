"""plugctl - platform-aware plugin package manager"""

__version__ = "0.4.0"
