import sys

from k2cli.cli import main

if __name__ == "__main__":
    sys.exit(main())
