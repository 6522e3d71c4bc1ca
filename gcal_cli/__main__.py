import sys

from gcal_cli.cli import main

sys.exit(main())
