import sys

from chat_bridge.cli import main

sys.exit(main())
