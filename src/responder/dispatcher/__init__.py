"""FastAPI service receiving webhooks and exposing the incident API."""

from responder.dispatcher.ingestor import IngestResult, IngestStatus, WebhookIngestor
from responder.dispatcher.main import app, create_app, run
from responder.dispatcher.routes import router

__all__ = ["IngestResult", "IngestStatus", "WebhookIngestor", "app", "create_app", "router", "run"]
