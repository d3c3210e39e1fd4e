"""Run the demo oracle server: python -m demo_api"""
import os

import uvicorn

from demo_api.api import create_app


def main():
    seed = os.environ.get("BLOCKBREAK_DEMO_SEED")
    app = create_app(seed=int(seed) if seed else None)
    uvicorn.run(
        app,
        host=os.environ.get("BLOCKBREAK_DEMO_HOST", "127.0.0.1"),
        port=int(os.environ.get("BLOCKBREAK_DEMO_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
