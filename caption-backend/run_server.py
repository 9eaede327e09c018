import uvicorn

from config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        # Exclude per-job temp files and served media from the reload watcher
        reload_excludes=["temp/*", "uploads/*", "outputs/*"]
    )
