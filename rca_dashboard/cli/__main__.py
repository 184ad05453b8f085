"""Allow ``python -m rca_dashboard.cli`` execution."""

from rca_dashboard.cli.console import main

main()
