"""
Credential lifecycle for keyservice.

This package provides:
- Credential generation
- The credential registry (in-memory and SQL backends)
- The Auth.* RPC facade
"""
