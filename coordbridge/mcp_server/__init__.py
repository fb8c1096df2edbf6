"""Local MCP protocol surface: stdio transport, dispatch and tool catalogs."""
