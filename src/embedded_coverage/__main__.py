"""Module entrypoint.

Allows:
    python -m embedded_coverage
"""

from __future__ import annotations

from embedded_coverage.server.coverage_server import main

if __name__ == "__main__":
    main()
