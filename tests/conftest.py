import os
import tempfile
from pathlib import Path

# Keep the operation log out of the package directory while tests run.
os.environ.setdefault("HA_LOG_PATH", str(Path(tempfile.mkdtemp(prefix="ha-light-bridge-")) / "operations.jsonl"))
