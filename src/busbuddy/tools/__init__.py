"""MCP tool registrations. Importing a module registers its tools."""
