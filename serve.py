#!/usr/bin/env python3
"""
Run the ChatLens API server.

Usage:
    python serve.py [--host 0.0.0.0] [--port 8000]
"""

import argparse

import uvicorn

from config import config
from chatlens.console import console
from chatlens.api import create_app
from chatlens.pipeline import AnalysisPipeline
from chatlens.providers import Providers


def build_app():
    providers = Providers.from_config(config.providers)
    return create_app(AnalysisPipeline(providers))


def main():
    parser = argparse.ArgumentParser(description='ChatLens API server')
    parser.add_argument('--host', default=config.server.host, help='Bind address')
    parser.add_argument('--port', type=int, default=config.server.port, help='Port')
    args = parser.parse_args()

    app = build_app()
    path = "full pipeline" if app.state.pipeline.providers.full_pipeline_available else "simplified path only"
    console.print(f"[bold cyan]ChatLens API[/bold cyan] on http://{args.host}:{args.port} ({path})")
    console.print(f"Docs available at: http://{args.host}:{args.port}/docs")

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == '__main__':
    main()
