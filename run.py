import os

import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    # Single worker: the app is fully async and keeps no shared state
    workers = int(os.environ.get("WEB_CONCURRENCY", 1))
    uvicorn.run(
        "maxtt_billing.main:app",
        host="0.0.0.0",
        port=port,
        workers=workers,
    )
