"""Realtime speech translation core.

Two translation sessions (caller and agent) are driven by one AudioRelay per
call. The relay owns the sessions and their latency trackers; media legs are
supplied by the host server.
"""
