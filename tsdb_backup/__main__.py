import sys

from tsdb_backup.cli import main

sys.exit(main())
