import sys

from solguard.cli import main

sys.exit(main())
