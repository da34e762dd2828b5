"""
Tenant admission service.

Decides allow/deny for each inbound connection from a tenant code and the
client address handed over by the transport terminator.
"""
