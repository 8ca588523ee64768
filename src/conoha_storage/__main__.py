import sys

from conoha_storage.cli import main

sys.exit(main())
