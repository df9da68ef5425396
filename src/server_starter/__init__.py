"""
server-starter - socket-activated child server supervision

Binds a listening socket in the parent, hands it (or its port) to a child
server process, reports the moment the child is ready, and stops it again.
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
