import sys

from cardpop.service import main

sys.exit(main())
