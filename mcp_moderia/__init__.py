"""MCP server package for Moderia."""
