"""
VKG query agent - natural language questions answered over federated Trino catalogs.
"""

__version__ = "1.0.0"
