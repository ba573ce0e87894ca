# Ensure the `backend` directory is importable so `audio_assembly` resolves
from __future__ import annotations

import sys
import tempfile
from pathlib import Path

# Add the backend directory to PYTHONPATH so imports like `from audio_assembly.*` work
ROOT_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT_DIR))

# Use an in-memory SQLite DB and in-process Celery transport during tests unless overridden
import os
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DB_ECHO", "0")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

# Logs and stored objects go to a throw-away directory
_TMP_ROOT = Path(tempfile.mkdtemp(prefix="assembly-tests-"))
os.environ.setdefault("DATA_ROOT", str(_TMP_ROOT / "data"))
os.environ.setdefault("LOG_DIR", str(_TMP_ROOT / "logs"))
os.environ.setdefault("ELEVENLABS_API_KEY", "test-elevenlabs-key")
os.environ.setdefault("STORAGE_SIGNING_KEY", "test-signing-key")
