import os

import uvicorn

from src.api.app import create_app

# python -m src.api
if __name__ == "__main__":
    uvicorn.run(
        create_app(),
        host=os.environ.get("API_HOST", "127.0.0.1"),
        port=int(os.environ.get("API_PORT", "8000")),
    )
