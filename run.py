"""Run the pm2panel service."""

from pm2panel.__main__ import main

if __name__ == "__main__":
    main()
