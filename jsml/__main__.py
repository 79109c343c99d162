import sys

from jsml.cli import main

sys.exit(main())
