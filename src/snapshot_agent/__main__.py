import sys

from snapshot_agent.main import main

sys.exit(main())
