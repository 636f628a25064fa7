import os
import tempfile

# Set before any test module imports main, which refuses to start without it.
os.environ.setdefault("GASTOS_TOKEN_SECRET", "test-secret")
os.environ.setdefault("GASTOS_DATA_DIR", tempfile.mkdtemp(prefix="gastos-tests-"))
