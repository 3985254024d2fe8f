import sys

from ledger_resolver.cli import main

sys.exit(main())
