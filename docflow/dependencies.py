from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request

from .config import AppSettings, load_settings
from .persistence import ReviewStore
from .services.classification import ClassificationService, ConfidenceCalculator
from .services.extraction import (
    ExtractionService,
    SchemaStore,
    TypeCoercionService,
    ValidationService,
)
from .services.learning import ExampleStore, LearningService
from .services.llm import LLMClient, ToolRegistry, ToolUsageLogger
from .services.thresholds import ThresholdStore


@dataclass
class Services:
    settings: AppSettings
    store: ReviewStore
    thresholds: ThresholdStore
    learning: LearningService
    usage_logger: ToolUsageLogger
    llm: LLMClient
    classification: ClassificationService
    extraction: ExtractionService


def build_services(settings: Optional[AppSettings] = None, llm: Optional[LLMClient] = None) -> Services:
    """Construct every service once; nothing in the pipeline holds module-level state."""
    settings = settings or load_settings()
    store = ReviewStore(settings.doc_store_path)

    schema_store = SchemaStore()
    confidence = ConfidenceCalculator()
    thresholds = ThresholdStore(store, default_threshold=settings.default_threshold)
    example_store = ExampleStore(store)
    learning = LearningService(example_store)
    usage_logger = ToolUsageLogger(store)
    llm = llm or LLMClient.from_settings(settings, usage_logger=usage_logger)

    classification = ClassificationService(
        llm=llm,
        tools=ToolRegistry(example_store),
        confidence=confidence,
        learning=learning,
        schema_store=schema_store,
        thresholds=thresholds,
        max_text_chars=settings.classification_text_chars,
    )
    extraction = ExtractionService(
        llm=llm,
        schema_store=schema_store,
        coercion=TypeCoercionService(schema_store),
        validation=ValidationService(schema_store),
        confidence=confidence,
        learning=learning,
        thresholds=thresholds,
        max_text_chars=settings.extraction_text_chars,
    )

    return Services(
        settings=settings,
        store=store,
        thresholds=thresholds,
        learning=learning,
        usage_logger=usage_logger,
        llm=llm,
        classification=classification,
        extraction=extraction,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


@asynccontextmanager
async def lifespan(app: FastAPI):
    await app.state.services.store.init()
    yield
