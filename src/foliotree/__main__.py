"""Allow running foliotree as ``python -m foliotree``."""

import sys

from foliotree.cli import main

sys.exit(main())
