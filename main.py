"""
Entrypoint for the KB Patch Engine HTTP service.
Wires the FastAPI application together and registers the patch routes.
"""

from __future__ import annotations

import argparse
import logging

from fastapi import FastAPI

from config import config
from kb_patch import __version__
from kb_patch.router import router as kb_patch_router
from logging_utils import setup_logging

setup_logging(config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="KB Patch Engine",
    description="Structured patching of knowledge-base documents from LLM <save> directives",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# KB Patch routes
app.include_router(kb_patch_router, prefix="/kb-patch")


@app.get("/")
async def root():
    return {"service": "kb-patch", "version": __version__}


if __name__ == "__main__":
    import uvicorn

    parser = argparse.ArgumentParser(description="KB Patch Engine")
    parser.add_argument("--host", default=config.APP_HOST, help="Bind address")
    parser.add_argument("--port", type=int, default=config.APP_PORT, help="Bind port")
    parser.add_argument("--reload", action="store_true", default=config.APP_RELOAD, help="Auto-reload on changes")
    args = parser.parse_args()

    logger.info("Knowledge base root: %s", config.KNOWLEDGE_BASE.root_path)
    logger.info("Starting with uvicorn on %s:%d", args.host, args.port)
    uvicorn.run("main:app", host=args.host, port=args.port, reload=args.reload)
