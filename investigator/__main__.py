import sys

from investigator.main import main

sys.exit(main())
