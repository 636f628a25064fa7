import logging
from typing import Iterator, Optional

from fastapi import Depends, FastAPI, Path, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal
from errors import AuthenticationError, ServiceError
from periods import local_now
from schemas import (
    AppliedMonthlyExpense,
    AuthOut,
    ExpenseEnvelope,
    ExpenseIn,
    ExpenseList,
    ExpenseOut,
    LoginIn,
    MonthlyExpenseEnvelope,
    MonthlyExpenseIn,
    MonthlyExpenseList,
    MonthlyExpenseOut,
    RegisterIn,
    UserEnvelope,
    UserOut,
)
from security import generate_access_token, read_access_token, require_token_secret
from services import ExpenseService, MonthlyExpenseService, UserService


settings = get_settings()
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)
require_token_secret()

# Ids beyond a signed 64-bit integer cannot match a row.
MAX_ID = 2**63 - 1


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

app = FastAPI(title="Gestor de gastos", version=APP_VERSION)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_origin],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> int:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing session token")
    return read_access_token(credentials.credentials)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"request_failed: path={request.url.path} error={exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(
            str(part) for part in error.get("loc", ()) if part != "body"
        )
        message = error.get("msg", "")
        messages.append(f"{location}: {message}" if location else message)
    return JSONResponse(
        status_code=400,
        content={
            "error": "The submitted data is not valid",
            "details": "; ".join(messages),
        },
    )


@app.get("/health")
def health():
    return {"status": "ok", "version": APP_VERSION}


@app.post("/api/auth/register", response_model=AuthOut, status_code=201)
def register(data: RegisterIn, db: Session = Depends(get_db)):
    user = UserService(db).register(data)
    return AuthOut(
        user=UserOut.model_validate(user), token=generate_access_token(user.id)
    )


@app.post("/api/auth/login", response_model=AuthOut)
def login(data: LoginIn, db: Session = Depends(get_db)):
    user = UserService(db).authenticate(data)
    return AuthOut(
        user=UserOut.model_validate(user), token=generate_access_token(user.id)
    )


@app.get("/api/auth/me", response_model=UserEnvelope)
def me(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    user = UserService(db).get(user_id)
    return UserEnvelope(user=UserOut.model_validate(user))


@app.get("/api/expenses", response_model=ExpenseList)
def list_expenses(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    expenses = ExpenseService(db, user_id).list(date_from, date_to)
    return ExpenseList(expenses=[ExpenseOut.model_validate(e) for e in expenses])


@app.post("/api/expenses", response_model=ExpenseEnvelope, status_code=201)
def create_expense(
    data: ExpenseIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    expense = ExpenseService(db, user_id).create(data)
    return ExpenseEnvelope(expense=ExpenseOut.model_validate(expense))


@app.delete("/api/expenses/{expense_id}", status_code=204)
def delete_expense(
    expense_id: int = Path(..., ge=1, le=MAX_ID),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    ExpenseService(db, user_id).delete(expense_id)
    return Response(status_code=204)


@app.get(
    "/api/monthly-expenses",
    response_model=MonthlyExpenseList,
    response_model_exclude_none=True,
)
def list_monthly_expenses(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    items = MonthlyExpenseService(db, user_id).list()
    return MonthlyExpenseList(
        monthly_expenses=[MonthlyExpenseOut.model_validate(item) for item in items]
    )


@app.post(
    "/api/monthly-expenses",
    response_model=MonthlyExpenseEnvelope,
    response_model_exclude_none=True,
    status_code=201,
)
def create_monthly_expense(
    data: MonthlyExpenseIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    item = MonthlyExpenseService(db, user_id).create(data)
    return MonthlyExpenseEnvelope(
        monthly_expense=MonthlyExpenseOut.model_validate(item)
    )


@app.delete("/api/monthly-expenses/{item_id}", status_code=204)
def delete_monthly_expense(
    item_id: int = Path(..., ge=1, le=MAX_ID),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    MonthlyExpenseService(db, user_id).delete(item_id)
    return Response(status_code=204)


@app.post(
    "/api/monthly-expenses/{item_id}/apply",
    response_model=AppliedMonthlyExpense,
    response_model_exclude_none=True,
    status_code=201,
)
def apply_monthly_expense(
    item_id: int = Path(..., ge=1, le=MAX_ID),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    service = MonthlyExpenseService(db, user_id)
    expense, item = service.apply(item_id, local_now(service.zone))
    return AppliedMonthlyExpense(
        expense=ExpenseOut.model_validate(expense),
        monthly_expense=MonthlyExpenseOut.model_validate(item),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
