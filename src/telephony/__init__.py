"""Telephony media legs.

A call is bridged as two Twilio Media Streams: the inbound leg carries the
caller, the outbound leg carries the agent. Each stream is wrapped as a media
leg and handed to the call's audio relay.
"""
