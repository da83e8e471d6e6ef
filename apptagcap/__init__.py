"""Frame parsing, a flow cache and procfs lookups for tagging flows with their applications."""

__version__ = "1.0.0"