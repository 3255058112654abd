import sys

from pybioclog.cli import main

sys.exit(main())
