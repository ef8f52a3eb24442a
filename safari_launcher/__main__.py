import sys

from safari_launcher.cli import main

sys.exit(main())
