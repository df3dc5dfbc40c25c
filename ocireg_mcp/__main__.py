from ocireg_mcp.cli import main

main()
