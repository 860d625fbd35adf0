from gutendex_mcp.server import run_server

run_server()
