import sys

from xencaps.cli import main

sys.exit(main())
