"""
MCP GitHub Gateway.

A single-endpoint HTTP service that lets agent roles list files, read files
and open pull requests on configured GitHub repositories through a GitHub
App installation, with per-repository read/write permissions and an audit log.
"""

__version__ = "0.1.0"
