"""MCP server exposing loop statistics to agents."""
