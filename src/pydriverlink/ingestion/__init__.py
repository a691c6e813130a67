"""Ingestion layer.

Turns inbound realtime payloads into typed models. Nothing here talks to
the transport.
"""
