"""FastAPI application entrypoint and HTTP controllers.

This module defines the server-rendered pages of the Student Life
Scoreboard. Controllers are intentionally thin: they accept form posts
and query strings, delegate to services and render Jinja2 templates or
redirect.

Endpoints implemented:
- GET /, GET /health
- GET|POST /login, GET|POST /register, GET|POST /logout
- GET /dashboard, GET /stats
- GET /entries, GET /entries/new, POST /entries
- GET /entries/{id}/edit, POST /entries/{id}, POST /entries/{id}/delete
- GET /uploads/{filename}
"""

from fastapi import FastAPI, Depends, UploadFile, File, HTTPException, Form, Request
from fastapi.responses import RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlmodel import Session
import json
import logging
import time
import uuid
from datetime import date
from pathlib import Path
from .database import engine, create_db_and_tables, get_session
from . import services, models
from .auth import LoginRequired, get_current_user, current_username
from .schemas import EntryForm, RegisterIn
from .utils.storage import FileStorage
from .config import settings

app = FastAPI(title="Student Life Scoreboard")
logger = logging.getLogger("scoreboard.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

PACKAGE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(PACKAGE_DIR / "templates"))
storage = FileStorage(settings.UPLOAD_DIR, settings.MAX_UPLOAD_BYTES)

static_dir = PACKAGE_DIR / "static"
if static_dir.exists():
    app.mount("/static", StaticFiles(directory=static_dir), name="static")
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")

create_db_and_tables()
with Session(engine) as _session:
    try:
        services.CategoryService(_session).run_startup_migrations()
    except Exception:
        logger.exception("error during data migration")


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    if not request.url.path.startswith(("/static", "/uploads")):
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
    return response


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    """Send anonymous or expired sessions to the login page."""
    logger.info("redirecting to login: %s (%s)", exc.reason, request.url.path)
    response = RedirectResponse(url="/login", status_code=303)
    if request.cookies.get(settings.SESSION_COOKIE_NAME):
        response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return response


def _render(request: Request, name: str, context: dict | None = None, status_code: int = 200):
    ctx = {"current_username": current_username(request)}
    ctx.update(context or {})
    return templates.TemplateResponse(request, name, ctx, status_code=status_code)


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


def _parse_filter_date(raw: str | None, field: str) -> date | None:
    if raw is None or not raw.strip():
        return None
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be an ISO date (YYYY-MM-DD)")


def _parse_filter_id(raw: str | None) -> int | None:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="category_id must be an integer")


def entry_form(
    category_id: str | None = Form(default=None),
    description: str | None = Form(default=None),
    entry_date: str | None = Form(default=None, alias="date"),
    duration: str | None = Form(default=None),
    score: str | None = Form(default=None),
    notes: str | None = Form(default=None),
    custom_label: str | None = Form(default=None),
) -> EntryForm:
    """Collect the habit entry form fields into an `EntryForm`."""
    return EntryForm(
        category_id=category_id,
        description=description,
        date=entry_date,
        duration=duration,
        score=score,
        notes=notes,
        custom_label=custom_label,
    )


def _form_from_entry(entry: models.HabitEntry) -> EntryForm:
    return EntryForm(
        category_id=entry.category_id,
        description=entry.description,
        date=entry.date,
        duration=entry.duration,
        score=entry.score,
        notes=entry.notes,
        custom_label=entry.custom_label,
    )


def _render_entry_form(request: Request, db: Session, form: EntryForm, entry: models.HabitEntry | None = None,
                       errors: dict | None = None, status_code: int = 200):
    return _render(request, "habits/form.html", {
        "form": form,
        "entry": entry,
        "errors": errors or {},
        "categories": services.CategoryService(db).list_categories(),
        "action": f"/entries/{entry.id}" if entry else "/entries",
    }, status_code=status_code)


@app.get("/")
def home(request: Request):
    """Landing page."""
    return _render(request, "index.html")


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


@app.get("/login")
def login_page(request: Request, error: str | None = None, logout: str | None = None):
    """Login form; `?error` and `?logout` add a notice."""
    return _render(request, "auth/login.html", {
        "error": "Invalid username or password" if error is not None else None,
        "message": "You have been logged out" if logout is not None else None,
    })


@app.post("/login")
def login(username: str | None = Form(default=None), password: str | None = Form(default=None),
          db: Session = Depends(get_session)):
    """Authenticate a user and store a signed session token in a cookie.

    Failures redirect back to the login form with a generic error flag.
    """
    creds = RegisterIn(username=username, password=password)
    token = services.AuthService(db).authenticate(creds.username, creds.password)
    if not token:
        logger.info("failed login for %s", creds.username)
        return _redirect("/login?error=true")
    response = _redirect("/")
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.JWT_EXPIRE_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.COOKIE_SECURE,
    )
    return response


@app.get("/register")
def register_page(request: Request):
    return _render(request, "auth/register.html", {"username": "", "error": None})


@app.post("/register")
def register(request: Request, username: str | None = Form(default=None), password: str | None = Form(default=None),
             db: Session = Depends(get_session)):
    """Create an account; errors re-render the form."""
    creds = RegisterIn(username=username, password=password)
    try:
        services.AuthService(db).register(creds.username, creds.password)
    except ValueError as e:
        return _render(request, "auth/register.html", {"username": creds.username, "error": str(e)}, status_code=400)
    return _redirect("/login")


@app.api_route("/logout", methods=["GET", "POST"])
def logout():
    response = _redirect("/login?logout=true")
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return response


@app.get("/dashboard")
def dashboard(request: Request, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Today's and this week's numbers for the current user."""
    svc = services.EntryService(db, storage)
    today = date.today()
    return _render(request, "dashboard.html", {
        "today": today,
        "today_total_points": svc.today_total_points(user, today),
        "week_total_points": svc.week_total_points(user, today),
        "points_by_type": svc.points_by_category_for_week(user, today),
        "balance_score": svc.balance_score_for_week(user, today),
        "today_entries": svc.today_entries(user, today),
        "today_count": svc.today_entry_count(user, today),
        "today_average_score": svc.today_average_score(user, today),
    })


@app.get("/stats")
def stats(request: Request, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Weekly minutes per category."""
    svc = services.EntryService(db, storage)
    return _render(request, "stats.html", {"weekly_stats": svc.weekly_stats(user)})


@app.get("/entries")
def list_entries(request: Request, category_id: str | None = None, start_date: str | None = None,
                 end_date: str | None = None, db: Session = Depends(get_session),
                 user: models.User = Depends(get_current_user)):
    """List the user's entries, optionally filtered by category and date range."""
    cat_id = _parse_filter_id(category_id)
    start = _parse_filter_date(start_date, "start_date")
    end = _parse_filter_date(end_date, "end_date")
    entries = services.EntryService(db, storage).filter_entries(user, category_id=cat_id, start=start, end=end)
    return _render(request, "habits/list.html", {
        "entries": entries,
        "categories": services.CategoryService(db).list_categories(),
        "selected_category_id": cat_id,
        "selected_start_date": start_date or "",
        "selected_end_date": end_date or "",
    })


@app.get("/entries/new")
def new_entry(request: Request, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return _render_entry_form(request, db, EntryForm(date=date.today()))


@app.post("/entries")
def create_entry(request: Request, form: EntryForm = Depends(entry_form), image: UploadFile | None = File(default=None),
                 db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Create an entry for the current user; validation errors re-render the form."""
    try:
        services.EntryService(db, storage).create_entry(user, form, image)
    except services.EntryValidationError as e:
        return _render_entry_form(request, db, form, errors=e.errors, status_code=400)
    return _redirect("/entries")


@app.get("/entries/{entry_id}/edit")
def edit_entry(request: Request, entry_id: int, db: Session = Depends(get_session),
               user: models.User = Depends(get_current_user)):
    entry = services.EntryService(db, storage).get_owned_entry(user, entry_id)
    if entry is None:
        return _redirect("/entries")
    return _render_entry_form(request, db, _form_from_entry(entry), entry=entry)


@app.post("/entries/{entry_id}")
def update_entry(request: Request, entry_id: int, form: EntryForm = Depends(entry_form),
                 image: UploadFile | None = File(default=None), db: Session = Depends(get_session),
                 user: models.User = Depends(get_current_user)):
    """Update an owned entry; entries of other users are left untouched."""
    svc = services.EntryService(db, storage)
    try:
        svc.update_entry(user, entry_id, form, image)
    except services.EntryValidationError as e:
        return _render_entry_form(request, db, form, entry=svc.get_owned_entry(user, entry_id),
                                  errors=e.errors, status_code=400)
    return _redirect("/entries")


@app.post("/entries/{entry_id}/delete")
def delete_entry(entry_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    services.EntryService(db, storage).delete_entry(user, entry_id)
    return _redirect("/entries")
