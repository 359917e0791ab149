from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from aurelia.config import settings
from aurelia.errors import GraphError
from aurelia.logger import get_logger
from service.extraction_router import router as extraction_router
from service.graph_router import router as graph_router
from service.retrieval_router import router as retrieval_router

logger = get_logger(__name__)

app = FastAPI(
    title="AURELIA Knowledge Graph API",
    description="Knowledge graph storage, LLM entity extraction and GraphRAG retrieval for AURELIA.",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Error bodies are always {"error": "..."} ---

@app.exception_handler(GraphError)
async def graph_error_handler(request: Request, exc: GraphError):
    if exc.status_code >= 500:
        logger.error(f"{request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"{location}: {first.get('msg')}" if location else first.get("msg", "Invalid request")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"{request.url.path} failed unexpectedly: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": str(exc) or "Unknown error"})


# --- Include all the Routers ---
app.include_router(graph_router)
app.include_router(extraction_router)
app.include_router(retrieval_router)


@app.get("/")
def read_root():
    return {"message": "AURELIA Knowledge Graph API is running."}
