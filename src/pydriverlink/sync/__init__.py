"""Offline-safe synchronization state.

Everything the connection manager holds on to while the transport is
down: the outbound queue, the background location buffer, the set of
ride rooms to replay, and the heartbeat.
"""
