"""Entry point for running MCP server as a module.

This allows running the server with: python -m analytics.services.mcp_server
"""

import sys

if __name__ == "__main__":
    try:
        from analytics.services.mcp_server.main import mcp

        mcp.run()
    except ImportError as e:
        print(f"Error: Failed to import MCP server: {e}", file=sys.stderr)
        print(
            "Ensure all dependencies are installed (pip install -e .) and PYTHONPATH is set correctly",
            file=sys.stderr,
        )
        sys.exit(1)
