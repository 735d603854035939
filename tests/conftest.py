import os
import tempfile

# Settings are read once at import time; point them at a throwaway directory.
os.environ.setdefault("BUDGET_DATA_DIR", tempfile.mkdtemp(prefix="budget-tests-"))
os.environ.setdefault("BUDGET_SCHEDULER_ENABLED", "false")
os.environ.setdefault("BUDGET_ACCESS_KEY", "test-access-key")
os.environ.setdefault("BUDGET_TIMEZONE", "UTC")
