"""Allow ``python -m deepcrawl``."""

import sys

from .cli.main import main

sys.exit(main())
