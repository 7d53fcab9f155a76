"""
keyservice: issues and rotates per-user access credentials for a storage
cluster over a JSON RPC endpoint.
"""
__version__ = "0.1.0"
