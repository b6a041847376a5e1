"""
Home Assistant state ingestion into Azure Digital Twins.

Receives batches of Home Assistant state-change events, maps sensor readings
onto a last-known-value record and applies them to Azure Digital Twins.
"""

__version__ = "0.1.0"
