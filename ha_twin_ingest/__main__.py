import sys

from ha_twin_ingest.cli import main

sys.exit(main())
