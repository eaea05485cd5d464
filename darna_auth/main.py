"""ASGI entrypoint for the Darna authentication service.

Run with:
    uvicorn darna_auth.main:app --port 8000
"""

from .core.app_factory import create_application

app = create_application()

if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))
