from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.database import init_db
from app.core.exceptions import LibraryError
from app.core.logging import setup_logging
from app.domain.values import utcnow
from app.api import routes

logger = setup_logging()

init_db()
app = FastAPI(title="E-Library Rentals")
app.include_router(routes.router)

@app.exception_handler(LibraryError)
def library_error_handler(request: Request, exc: LibraryError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})

@app.get("/health")
def health():
    return {"status": "ok", "time": utcnow().isoformat()}
