"""Allow ``python -m copilot_metrics``."""

import sys

from .handler import main

sys.exit(main())
