"""
World Host - runs game servers for many tenants on one node

Responsibilities:
- Start/stop one server process per world, each on its own port
- Reclaim ports of servers that exit on their own
- Keep the reverse proxy's routes in line with the running servers
- Management API for remote nodes
"""
