import sys

from token_bind.cli import main

sys.exit(main())
