"""
JSON RPC transport: wire protocol, dispatcher and client.
"""
