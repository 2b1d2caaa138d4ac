"""
Run the Tableside API under uvicorn.
"""
import os

import uvicorn

from tableside.main import app

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        ws_ping_interval=None,
    )
