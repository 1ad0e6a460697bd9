"""
Collector daemon package for the Shelly-to-InfluxDB pipeline.

Polls Shelly power meters on the local network and through the Shelly Cloud
API, normalizes their status payloads into one metric shape, and writes them
to InfluxDB v2 as line protocol.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""
