import sys

from retryguard.cli import main

sys.exit(main())
