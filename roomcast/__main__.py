import sys

from roomcast.cli.server import main

sys.exit(main())
