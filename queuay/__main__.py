import sys

from queuay.main import main

sys.exit(main())
