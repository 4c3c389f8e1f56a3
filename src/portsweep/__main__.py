import sys

from portsweep.cli import main

sys.exit(main())
