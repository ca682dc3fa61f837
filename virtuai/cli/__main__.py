"""Allow ``python -m virtuai.cli`` execution."""

from virtuai.cli.manage import main

main()
