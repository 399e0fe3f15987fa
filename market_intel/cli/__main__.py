"""Allow ``python -m market_intel.cli`` execution."""

import sys

from market_intel.cli.market import main

sys.exit(main())
