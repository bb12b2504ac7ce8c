"""
MCP server exposing the tracker repositories as tools for AI assistants.

Usage:
    from tracker.mcp import TrackerMCPServer

    server = TrackerMCPServer()
    server.run(transport="sse")
"""

from tracker.mcp.server import ToolFailure, TrackerMCPServer, main

__all__ = ["ToolFailure", "TrackerMCPServer", "main"]
