import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from config import get_settings
from dependencies import PipelineProvider
from errors import PipelineError
from polling import JobRegistry
from routers.processing import router as processing_router

# --------------------------------------------------------------------------
# --- Configuration & Setup ---
# --------------------------------------------------------------------------

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

settings = get_settings()
settings.ensure_directories()

# Room for multipart boundaries and headers around the video part
MULTIPART_OVERHEAD_BYTES = 64 * 1024


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.info(f"🚀 Caption backend ready (renderer={settings.render_backend}, storage={settings.storage_backend})")
    yield
    cancelled = app.state.jobs.cancel_all()
    if cancelled:
        logging.warning(f"Cancelled {cancelled} in-flight job(s) on shutdown.")


app = FastAPI(
    title="Caption Backend",
    description="Transcribes uploaded videos and renders animated captions onto them.",
    lifespan=lifespan,
)
app.state.jobs = JobRegistry()
app.state.pipelines = PipelineProvider()


@app.middleware("http")
async def reject_oversized_uploads(request: Request, call_next):
    """Refuse uploads whose declared length is over the limit before the body is read."""
    limits = get_settings()
    length = request.headers.get("content-length", "")
    if length.isdigit() and int(length) > limits.max_upload_bytes + MULTIPART_OVERHEAD_BYTES:
        logging.warning(f"Rejected a {length}-byte request before reading it.")
        return JSONResponse(
            status_code=413,
            content={"error": f"Video exceeds the {limits.max_upload_mb} MB upload limit"},
        )
    return await call_next(request)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    logging.error(f"❌ {exc.__class__.__name__}: {exc}")
    return JSONResponse(status_code=500, content={"error": str(exc)})


app.include_router(processing_router)

# --------------------------------------------------------------------------
# --- Static files for the local storage / render backends ---
# --------------------------------------------------------------------------

if settings.serves_local_files:
    app.mount("/uploads", StaticFiles(directory=settings.uploads_dir), name="uploads")
    app.mount("/outputs", StaticFiles(directory=settings.outputs_dir), name="outputs")
