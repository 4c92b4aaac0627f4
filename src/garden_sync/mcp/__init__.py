"""MCP server exposing garden sync to agents over stdio."""
