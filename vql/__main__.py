"""Allow ``python -m vql``."""

import sys

from vql.cli import main

sys.exit(main())
