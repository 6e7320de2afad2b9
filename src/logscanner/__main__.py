"""Module entrypoint.

Allows:
    python -m logscanner
"""

from __future__ import annotations

from logscanner.server.log_server import main

if __name__ == "__main__":
    main()
