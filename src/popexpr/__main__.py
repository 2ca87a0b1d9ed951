import sys

from popexpr.cli import main

sys.exit(main())
