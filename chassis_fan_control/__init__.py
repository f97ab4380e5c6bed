"""Temperature driven chassis fan control over IPMI."""

__version__ = "1.0.0"
