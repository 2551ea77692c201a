"""Allow running the package as a module: python -m time_vault"""

import sys

from time_vault.cli import main

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
