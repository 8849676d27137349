import sys

from statecheck.cli import main

sys.exit(main())
