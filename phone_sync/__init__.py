"""External phone data sync: source adapters, fallback chain, monitoring and orchestration."""

__version__ = "1.0.0"
