"""Schema parsing, SQL migration and query generation, ABI inspection, SQL storage and Redis caching for a multichain crawler."""

__version__ = "0.1.0"