import sys

from tracetool.cli import main

sys.exit(main())
