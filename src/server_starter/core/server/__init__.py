"""Socket-activated child server supervision.

This package binds a listening socket in the parent, launches a child server
that either inherits the socket (descriptor 3) or re-binds the announced
port, reports readiness, and stops the child again:

    handle = new_server()
    handle.launch(sys.executable, ["my_server.py"])
    urlopen(handle.url())
    handle.close()
"""

from .exit_waiter import ExitWaiter
from .handle import ServerHandle
from .listener import Listener, allocate
from .models import ExitStatus, LaunchOptions, ServerState
from .readiness import (
    INHERITED_FD,
    LISTEN_ENV,
    PORT_ENV,
    InheritedDescriptor,
    PortRebind,
    ReadinessMode,
    probe_until_ready,
    select_readiness,
)
from .starter import ServerStarter, new_server, server_lifecycle
from .supervisor import ProcessRecord, ProcessSupervisor, SpawnConfig

__all__ = [
    "INHERITED_FD",
    "LISTEN_ENV",
    "PORT_ENV",
    "ExitStatus",
    "ExitWaiter",
    "InheritedDescriptor",
    "LaunchOptions",
    "Listener",
    "PortRebind",
    "ProcessRecord",
    "ProcessSupervisor",
    "ReadinessMode",
    "ServerHandle",
    "ServerStarter",
    "ServerState",
    "SpawnConfig",
    "allocate",
    "new_server",
    "probe_until_ready",
    "select_readiness",
    "server_lifecycle",
]
