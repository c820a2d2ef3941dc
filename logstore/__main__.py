import sys

from logstore.cli import main

sys.exit(main())
