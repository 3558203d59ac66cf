"""
Shot Clock Sync Service

Server-authoritative basketball shot clock shared by every connection
in a room.
"""

__version__ = "0.1.0"
