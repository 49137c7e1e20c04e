"""Domain-specific realtime publishers.

These modules should contain *publish* helpers only (build payload + hand it
to the hub). They must not define Socket.IO server instances or connection
handlers.
"""
