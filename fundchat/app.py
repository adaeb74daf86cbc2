"""
fundchat/app.py
---------------
Thin entrypoint for running the fundchat FastAPI app via:

    uvicorn fundchat.app:app

All real route wiring lives in fundchat.fundchat_api.
"""

from .config import configure_logging, load_config
from .fundchat_api import create_app

_cfg = load_config()
configure_logging(_cfg)
app = create_app(_cfg)


if __name__ == "__main__":
    # Convenience for: python -m fundchat.app
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8080)
