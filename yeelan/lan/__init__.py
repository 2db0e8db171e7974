"""Yeelight LAN protocol engine.

Finds lights with a multicast search and drives each one over its own
persistent TCP command channel, without any cloud round-trip.
"""
