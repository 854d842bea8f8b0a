import json
import logging
import time
from typing import Optional
from fastapi import (
    Body,
    Depends,
    FastAPI,
    APIRouter,
    Query,
    Request,
    Response,
)
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from config import APP_VERSION, load_server_settings
from db import (
    AsyncQuoteRepository,
    ProgressRepository,
    QuoteRepository,
    SessionRepository,
    SettingsRepository,
    UserRepository,
)
from errors import HoopLogError, InvalidInputError, NotFoundError, UnauthorizedError
from auth_service import AuthService
from catalog_service import SessionCatalogService
from progress_service import ProgressTrackingService
from user_service import ProfileService, SettingsService
from image_service import ImageService
from models import User
from seed_sample_data import import_prebuilt_sessions, import_quotes

logger = logging.getLogger(__name__)


class RateLimiter:
    """Simple in-memory rate limiter."""

    def __init__(self, limit: int = 60, window: int = 60) -> None:
        self.limit = limit
        self.window = window
        self.requests: dict[str, list[float]] = {}

    async def __call__(self, request: Request, call_next):
        ip = request.client.host if request.client else "anon"
        now = time.time()
        history = [t for t in self.requests.get(ip, []) if now - t < self.window]
        if len(history) >= self.limit:
            return JSONResponse({"message": "rate limit exceeded"}, status_code=429)
        history.append(now)
        self.requests[ip] = history
        return await call_next(request)


async def read_payload(request: Request, file_field: str) -> tuple[dict, Optional[bytes]]:
    """Return the body fields and an optional uploaded file.

    Accepts ``multipart/form-data`` (fields plus ``file_field``) and JSON.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data") or content_type.startswith(
        "application/x-www-form-urlencoded"
    ):
        form = await request.form()
        data: dict = {}
        upload: Optional[bytes] = None
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if key == file_field:
                    content = await value.read()
                    upload = content or None
            else:
                data[key] = value
        return data, upload
    raw = await request.body()
    if not raw:
        return {}, None
    try:
        data = json.loads(raw)
    except ValueError:
        raise InvalidInputError("Malformed request body")
    if not isinstance(data, dict):
        raise InvalidInputError("Request body must be an object")
    return data, None


class HoopLogAPI:
    """Provides REST endpoints for the HoopLog mobile app."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        yaml_path: str = "hooplog.yaml",
        *,
        upload_dir: Optional[str] = None,
        jwt_secret: Optional[str] = None,
        rate_limit: Optional[int] = None,
        rate_window: Optional[int] = None,
        seed: bool = True,
    ) -> None:
        self.config = load_server_settings(
            yaml_path,
            db_path=db_path,
            upload_dir=upload_dir,
            jwt_secret=jwt_secret,
            rate_limit=rate_limit,
            rate_window=rate_window,
        )
        self.db_path = self.config.db_path
        self.users = UserRepository(self.db_path)
        self.sessions = SessionRepository(self.db_path)
        self.progress = ProgressRepository(self.db_path)
        self.user_settings = SettingsRepository(self.db_path)
        self.quotes = QuoteRepository(self.db_path)
        self.quotes_async = AsyncQuoteRepository(self.db_path)
        if seed:
            import_prebuilt_sessions(self.sessions)
            import_quotes(self.quotes)
        self.images = ImageService(self.config.upload_dir)
        self.auth = AuthService(
            self.users,
            self.config.jwt_secret,
            self.config.jwt_algorithm,
            self.config.token_expire_days,
        )
        self.catalog = SessionCatalogService(self.sessions, self.progress)
        self.tracking = ProgressTrackingService(self.progress, self.sessions)
        self.profiles = ProfileService(self.users, self.images)
        self.settings = SettingsService(self.user_settings)
        self.app = FastAPI(
            title="HoopLog API",
            description="REST API for logging basketball workout sessions",
            version=APP_VERSION,
        )
        if self.config.rate_limit is not None:
            limiter = RateLimiter(
                limit=self.config.rate_limit, window=self.config.rate_window
            )
            self.app.middleware("http")(limiter)
        self._setup_error_handlers()
        self._setup_routes()

    def _create_session(self, user_id: int, data: dict, image: Optional[bytes]):
        image_ref = self.images.save("sessions", image) if image else None
        try:
            return self.catalog.create(user_id, data, image_ref)
        except Exception:
            self.images.discard(image_ref)
            raise

    def _setup_error_handlers(self) -> None:
        @self.app.exception_handler(HoopLogError)
        async def handle_hooplog_error(request: Request, exc: HoopLogError):
            if exc.status_code >= 500:
                logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            elif exc.status_code in (401, 403):
                logger.warning(
                    "%s %s denied: %s", request.method, request.url.path, exc.message
                )
            return JSONResponse(
                status_code=exc.status_code, content={"message": exc.message}
            )

        @self.app.exception_handler(RequestValidationError)
        async def handle_request_validation(request: Request, exc: RequestValidationError):
            parts = []
            for err in exc.errors():
                loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
                msg = err.get("msg", "invalid value")
                parts.append(f"{loc}: {msg}" if loc else msg)
            return JSONResponse(status_code=400, content={"message": "; ".join(parts)})

        @self.app.exception_handler(Exception)
        async def handle_unexpected(request: Request, exc: Exception):
            logger.exception("%s %s crashed", request.method, request.url.path)
            return JSONResponse(
                status_code=500, content={"message": "Internal Server Error"}
            )

    def _setup_routes(self) -> None:
        auth_router = APIRouter(prefix="/auth", tags=["Auth"])
        sessions_router = APIRouter(prefix="/sessions", tags=["Sessions"])
        user_router = APIRouter(prefix="/user", tags=["User"])
        settings_router = APIRouter(prefix="/settings", tags=["Settings"])
        quote_router = APIRouter(prefix="/quote", tags=["Quotes"])
        bearer = HTTPBearer(auto_error=False)

        def current_user(
            credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
        ) -> User:
            if credentials is None:
                raise UnauthorizedError()
            return self.auth.authenticate(credentials.credentials)

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            self.sessions.fetch_all("SELECT 1;")
            return {"status": "ok", "version": APP_VERSION}

        @auth_router.post("/signup", status_code=201)
        def signup(payload: dict = Body(...)):
            user, token = self.auth.signup(payload)
            return {"user": user.to_dict(), "token": token}

        @auth_router.post("/login")
        def login(payload: dict = Body(...)):
            user, token = self.auth.login(payload)
            return {"user": user.to_dict(), "token": token}

        @sessions_router.get(
            "/prebuilt",
            summary="List prebuilt sessions",
            description="Sessions shipped with the app, newest first.",
        )
        def list_prebuilt(
            title: Optional[str] = None,
            session_type: Optional[str] = Query(None, alias="type"),
            difficulty: Optional[str] = None,
            user: User = Depends(current_user),
        ):
            entries = self.catalog.list_prebuilt(title, session_type, difficulty)
            return [e.to_dict() for e in entries]

        @sessions_router.get(
            "/mylist",
            summary="List my sessions",
            description="Sessions the caller is subscribed to, with progress.",
        )
        def list_mine(
            title: Optional[str] = None,
            session_type: Optional[str] = Query(None, alias="type"),
            difficulty: Optional[str] = None,
            favorite: Optional[bool] = None,
            user: User = Depends(current_user),
        ):
            rows = self.catalog.list_for_user(
                user.id, title, session_type, difficulty, favorite
            )
            return [
                {**record.to_dict(), "session": entry.to_dict()}
                for entry, record in rows
            ]

        @sessions_router.post("", status_code=201, summary="Create session")
        async def create_session(request: Request, user: User = Depends(current_user)):
            data, image = await read_payload(request, "image")
            entry = await run_in_threadpool(self._create_session, user.id, data, image)
            return entry.to_dict()

        @sessions_router.post("/reset-progress")
        def reset_progress(user: User = Depends(current_user)):
            self.tracking.reset_all(user.id)
            return {"message": "All progress has been reset"}

        @sessions_router.post("/{session_id}/favorite")
        def toggle_favorite(
            session_id: int,
            payload: Optional[dict] = Body(None),
            user: User = Depends(current_user),
        ):
            favorite = (payload or {}).get("favorite")
            record = self.tracking.toggle_favorite(user.id, session_id, favorite)
            return record.to_dict()

        @sessions_router.post("/{session_id}/subscribe", status_code=201)
        def subscribe(session_id: int, user: User = Depends(current_user)):
            return self.tracking.subscribe(user.id, session_id).to_dict()

        @sessions_router.put("/{session_id}/progress")
        def update_progress(
            session_id: int,
            payload: dict = Body(...),
            user: User = Depends(current_user),
        ):
            record = self.tracking.update_progress(user.id, session_id, payload)
            return record.to_dict()

        @sessions_router.delete("/{session_id}/unsubscribe")
        def unsubscribe(session_id: int, user: User = Depends(current_user)):
            self.tracking.unsubscribe(user.id, session_id)
            return {"message": "Session unsubscribed successfully"}

        @sessions_router.get("/{session_id}")
        def get_session(session_id: int, user: User = Depends(current_user)):
            return self.catalog.get(session_id).to_dict()

        @sessions_router.put("/{session_id}")
        def update_session(
            session_id: int,
            payload: dict = Body(...),
            user: User = Depends(current_user),
        ):
            return self.catalog.update(user.id, session_id, payload).to_dict()

        @sessions_router.delete("/{session_id}")
        def delete_session(session_id: int, user: User = Depends(current_user)):
            self.catalog.delete(user.id, session_id)
            return {"message": "Session deleted successfully"}

        @user_router.get("/profile")
        def get_profile(user: User = Depends(current_user)):
            return self.profiles.get(user.id).to_dict()

        @user_router.put("/profile")
        async def update_profile(request: Request, user: User = Depends(current_user)):
            data, avatar = await read_payload(request, "avatar")
            profile = await run_in_threadpool(self.profiles.update, user.id, data, avatar)
            return profile.to_dict()

        @user_router.get("/avatar")
        def get_avatar(user: User = Depends(current_user)):
            path, generated = self.profiles.avatar(user)
            if path is not None:
                return FileResponse(path)
            return Response(content=generated, media_type="image/png")

        @settings_router.get("")
        def get_settings(user: User = Depends(current_user)):
            return self.settings.get(user.id).to_dict()

        @settings_router.put("")
        def update_settings(
            payload: dict = Body(...), user: User = Depends(current_user)
        ):
            return self.settings.update(user.id, payload).to_dict()

        @quote_router.get("/random")
        async def random_quote(user: User = Depends(current_user)):
            quote = await self.quotes_async.random()
            if quote is None:
                raise NotFoundError("No quotes available")
            return quote.to_dict()

        @self.app.get("/uploads/{bucket}/{name}")
        def get_upload(bucket: str, name: str):
            return FileResponse(self.images.resolve(bucket, name))

        self.app.include_router(auth_router)
        self.app.include_router(sessions_router)
        self.app.include_router(user_router)
        self.app.include_router(settings_router)
        self.app.include_router(quote_router)


def create_app(yaml_path: str = "hooplog.yaml") -> FastAPI:
    return HoopLogAPI(yaml_path=yaml_path).app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app())
