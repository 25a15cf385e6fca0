import sys

from pmc_exchange.cli import main

sys.exit(main())
