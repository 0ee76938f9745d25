"""Lanoria vision gateway - FastAPI Web Application.

Forwards camera frames from the assistant to the vision models:
- /api/analyze-frame: short scene description with a danger flag
- /api/emergency: message for emergency services
"""

import argparse
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from lanoria.config import Config
from webapp.api import routes
from webapp.services.vision import vision_service

CONFIG_PATH = os.environ.get("LANORIA_CONFIG", "configs/config.yaml")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown."""
    # Startup
    print("=" * 50)
    print("Lanoria Vision Gateway")
    print("=" * 50)

    config = Config.from_yaml(CONFIG_PATH)
    vision_service.config = config.vision

    for name in ("OPENAI_API_KEY", "GEMINI_API_KEY"):
        if not os.environ.get(name):
            print(f"Warning: {name} is not set")

    print(f"  Analyze model: {config.vision.analyze_model}")
    print(f"  Emergency model: {config.vision.emergency_model}")
    print("=" * 50)

    yield

    # Shutdown
    print("\nShutting down...")
    vision_service.session.close()


app = FastAPI(
    title="Lanoria Vision Gateway",
    description="Scene descriptions and emergency messages for blind users",
    version="1.0.0",
    lifespan=lifespan,
)

# Include API routers
app.include_router(routes.router, prefix="/api", tags=["Vision"])


def run_server(host: str = "0.0.0.0", port: int = 8080):
    """Run the gateway server."""
    import uvicorn

    uvicorn.run(
        "webapp.main:app",
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )


def main() -> None:
    config = Config.from_yaml(CONFIG_PATH)
    parser = argparse.ArgumentParser(description="Lanoria Vision Gateway")
    parser.add_argument("--host", default=config.server.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=config.server.port, help="Port to run on")
    args = parser.parse_args()

    run_server(host=args.host, port=args.port)


if __name__ == "__main__":
    main()
