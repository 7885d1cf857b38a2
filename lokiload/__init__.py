"""
lokiload: load testing client for Loki.

Generates synthetic log streams and LogQL query workloads over a bounded
label space and drives them against the Loki push and query APIs.
"""

__version__ = "0.1.0"
