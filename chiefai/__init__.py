"""
chiefai - meeting-request pipeline

Reads inbound messages, detects meeting requests, resolves requested times
across timezones, checks calendar availability and stores a draft response
for the user to approve.
"""

__version__ = "0.3.0"
