"""
FastAPI backend for TruthTable.

Provides REST endpoints for the voice platform and the voice assistant:
- POST /api/webhook: ingest a call-completion webhook
- POST /api/vapi-rag: answer a follow-up question with retrieved context
- POST /api/user-lookup: resolve a phone/email/user id to a profile
- POST /api/search-transcripts: similarity search over a user's calls
- GET /health, GET /metrics, GET /metrics/summary
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from truthtable import __version__, monitoring
from truthtable.config import Settings
from truthtable.errors import InputError
from truthtable.services import Services, build_services

logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


class RagRequest(BaseModel):
    """Request model for RAG queries."""
    message: str
    userId: Optional[str] = None
    dreamId: Optional[str] = None
    callStage: int = Field(1, ge=1, le=4)
    includeTranscripts: bool = True
    includeKnowledge: bool = True
    includeDreamDNA: bool = True


class UserLookupRequest(BaseModel):
    """Request model for user lookups."""
    phone: Optional[str] = None
    email: Optional[str] = None
    userId: Optional[str] = None
    createIfMissing: bool = False


class SearchRequest(BaseModel):
    """Request model for transcript similarity search."""
    query: str
    userId: str
    limit: int = Field(5, ge=1, le=20)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Factory to create the FastAPI app.

    Args:
        services: Prebuilt component graph. When omitted it is built from
            the environment on the first request that needs it.
    """
    app = FastAPI(
        title="TruthTable API",
        description="Transcript intelligence pipeline with RAG answers and gap analysis",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,  # Must be False when using allow_origins=["*"]
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )

    state: Dict[str, Any] = {"services": services}

    def get_services() -> Services:
        if state["services"] is None:
            state["services"] = build_services()
        return state["services"]

    @app.exception_handler(InputError)
    async def input_error_handler(request: Request, exc: InputError):
        logger.warning(f"Rejected request to {request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"error": "Invalid request", "details": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation failed for {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": str(exc.errors())},
        )

    # Global exception handler for better error logging
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler to log all errors."""
        logger.error(f"Unhandled exception: {type(exc).__name__}: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "details": f"{type(exc).__name__}: {str(exc)}",
            },
        )

    @app.get("/")
    def root():
        """Root endpoint."""
        return {
            "message": "TruthTable API",
            "version": __version__,
            "endpoints": {
                "/api/webhook": "POST - Ingest a call-completion webhook",
                "/api/vapi-rag": "POST - Answer a question with retrieved context",
                "/api/user-lookup": "POST - Resolve a user by phone, email or id",
                "/api/search-transcripts": "POST - Similarity search over a user's calls",
                "/health": "GET - Health check",
                "/metrics": "GET - Prometheus metrics",
            },
        }

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "healthy", "message": "API is running"}

    @app.get("/metrics")
    def metrics():
        return Response(content=monitoring.get_prometheus_metrics(), media_type=monitoring.CONTENT_TYPE)

    @app.get("/metrics/summary")
    def metrics_summary():
        return monitoring.get_metrics_summary()

    @app.get("/api/webhook")
    def webhook_status():
        settings = state["services"].settings if state["services"] else Settings.from_env()
        return {
            "message": "Truth Table Webhook Endpoint",
            "status": "Ready to receive call webhooks",
            "url": "/api/webhook",
            "methods": ["POST"],
            "environment": {
                "supabase": bool(settings.supabase_url),
                "openai": bool(settings.openai_api_key),
                "llmProvider": settings.llm_provider,
            },
        }

    @app.post("/api/webhook")
    def webhook(payload: Dict[str, Any] = Body(...)):
        logger.info(f"Webhook received ({len(payload)} top-level keys)")
        processing = get_services().processor.process(payload)
        return {"received": True, "timestamp": _now(), "processing": processing}

    @app.post("/api/vapi-rag")
    def vapi_rag(request: RagRequest):
        if not request.message.strip():
            raise InputError("Message is required")

        svc = get_services()
        logger.info(f"RAG query for user {request.userId}, stage {request.callStage}: {request.message!r}")

        @monitoring.track_rag_query
        def answer():
            context = svc.assembler.assemble(
                request.message,
                request.userId,
                call_stage=request.callStage,
                include_transcripts=request.includeTranscripts,
                include_knowledge=request.includeKnowledge,
                include_intent_profile=request.includeDreamDNA,
            )
            text = svc.synthesizer.respond(request.message, context, user_id=context.resolved_user_id)
            return context, text

        context, text = answer()
        return {
            "success": True,
            "response": text,
            "context": {
                "retrievedTranscripts": len(context.transcripts),
                "retrievedKnowledge": len(context.knowledge),
                "dreamDNAIncluded": context.intent_profile is not None,
                "truthTableGaps": context.gap_report.model_dump(by_alias=True),
            },
        }

    @app.post("/api/user-lookup")
    def user_lookup(request: UserLookupRequest):
        result = get_services().identity.resolve(
            phone=request.phone,
            email=request.email,
            user_id=request.userId,
            create_if_missing=request.createIfMissing,
        )
        if result is None:
            return JSONResponse(
                status_code=404,
                content={
                    "error": "User not found",
                    "searchedBy": {"phone": request.phone, "email": request.email, "userId": request.userId},
                },
            )

        user = result.user
        return {
            "success": True,
            "user": {
                "id": user.id,
                "customer_name": user.customer_name,
                "customer_email": user.customer_email,
                "customer_phone": user.customer_phone,
                "business_name": user.business_name,
                "business_type": user.business_type,
                "current_call_stage": user.current_call_stage,
            },
            "lookupInfo": {
                "foundBy": result.found_by,
                "created": result.created,
                "identifier": request.userId or request.email or request.phone,
            },
        }

    @app.post("/api/search-transcripts")
    def search_transcripts(request: SearchRequest):
        if not request.query.strip():
            raise InputError("Query is required")
        results = get_services().assembler.search(request.query, request.userId, limit=request.limit)
        return {"success": True, "results": [r.model_dump() for r in results]}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
