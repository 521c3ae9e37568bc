"""Ingestion layer.

Adapters that decode inbound MQTT messages and fold them into the live
snapshot.
"""

__all__: list[str] = []
