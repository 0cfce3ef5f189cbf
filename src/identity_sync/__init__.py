"""Identity synchronization service.

Keeps the application's local identity records consistent with an external
identity provider through push/pull synchronizers, bulk batch runs, webhook
ingestion and a background reconciliation daemon.
"""

__version__ = "0.1.0"
