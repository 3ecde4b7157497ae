import uvicorn

from satcoach.core.config import settings

if __name__ == "__main__":
    reload = settings.ENV == "development"
    uvicorn.run("satcoach.main:app", host="0.0.0.0", port=settings.PORT, reload=reload)
