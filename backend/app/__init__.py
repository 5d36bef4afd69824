"""Watch party backend application.

Importing the package makes ``backend/src`` importable so ``watchparty`` can
be used without installation. The ASGI app lives in :mod:`app.main`.
"""

from pathlib import Path
import sys

SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if SRC_PATH.exists() and str(SRC_PATH) not in sys.path:  # pragma: no branch
    sys.path.append(str(SRC_PATH))
