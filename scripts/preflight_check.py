#!/usr/bin/env python3
import sys
import os

print("Running preflight import check...")
try:
    # Settings read env at import; a harmless default keeps the check offline
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

    import readiness.main
    print("Import readiness.main: OK")

    import readiness.core.orchestrator
    print("Import readiness.core.orchestrator: OK")

    import readiness.proximity.detector
    print("Import readiness.proximity.detector: OK")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
