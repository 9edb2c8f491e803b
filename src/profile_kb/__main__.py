"""Entry point for the profile-kb MCP server."""

from profile_kb.server import create_server


def main() -> None:
    """Run the profile-kb MCP server."""
    server = create_server()
    server.run(transport="stdio")


if __name__ == "__main__":
    main()
