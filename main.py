import logging
import re

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import AuthError, resolve_user_id
from config import Settings, get_settings
from database import SessionLocal
from errors import InvalidRequest, SaveError, StorageFault, VersionConflict
from periods import Clock, system_clock
from schemas import MONTH_KEY_PATTERN, AppliedOut, SaveResponseOut
from services import MonthlyDatasetService, MonthlySaveService
from validation import Err, validate_save_request

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

app = FastAPI(title="Household Ledger", version=APP_VERSION)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_clock() -> Clock:
    return system_clock()


def current_user_id(
    request: Request, settings: Settings = Depends(get_settings)
) -> str:
    return resolve_user_id(request.headers, settings)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return error_response(exc.status_code, exc.message)


@app.exception_handler(SaveError)
async def save_error_handler(request: Request, exc: SaveError) -> JSONResponse:
    if isinstance(exc, VersionConflict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "Conflict", "message": exc.message},
        )
    if isinstance(exc, StorageFault):
        logging.exception(
            f"storage_fault: path={request.url.path}", exc_info=exc.__cause__ or exc
        )
        return error_response(exc.status_code, "Internal Server Error")
    return error_response(exc.status_code, exc.message)


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logging.exception(f"storage_fault: path={request.url.path}", exc_info=exc)
    return error_response(500, "Internal Server Error")


@app.get("/healthz")
def healthz():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/monthly")
def get_monthly(
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    month_key = request.query_params.get("month_key") or ""
    if not re.fullmatch(MONTH_KEY_PATTERN, month_key):
        raise InvalidRequest("month_key must be in YYYY-MM format.")
    return MonthlyDatasetService(db, user_id).dataset(month_key)


@app.post("/api/monthly", response_model=SaveResponseOut)
async def post_monthly(
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
    clock: Clock = Depends(get_clock),
):
    try:
        body = await request.json()
    except ValueError as exc:
        raise InvalidRequest("Invalid JSON body.") from exc

    validated = validate_save_request(body)
    if isinstance(validated, Err):
        raise InvalidRequest(validated.reason)

    result = MonthlySaveService(db, user_id, clock=clock).save(validated.value)
    return SaveResponseOut(
        month_key=result.month_key,
        new_version=result.new_version,
        applied=AppliedOut(**result.applied.as_dict()),
    )


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
