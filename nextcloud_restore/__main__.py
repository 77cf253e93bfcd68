import sys

from nextcloud_restore.cli import main

sys.exit(main())
