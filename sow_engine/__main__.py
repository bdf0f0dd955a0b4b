import sys

from sow_engine.cli import main

sys.exit(main())
