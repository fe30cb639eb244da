from __future__ import annotations

import os
import tempfile

# db.py creates its engine at import time; point it at a scratch directory first.
os.environ["DB_DIR"] = tempfile.mkdtemp(prefix="cushions-test-")
os.environ.pop("APP_KEY", None)
os.environ.pop("DEFAULT_PATTERNED", None)
os.environ.pop("SKU_VERSION", None)
