"""
Node introspection for the Server.* RPC methods.
"""
