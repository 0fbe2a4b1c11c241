import datetime
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .accounts import CredentialStore
from .auth import PasswordHasher, TokenService
from .auth_utils import require_auth
from .config import Settings, configure_logging, load_settings
from .constants import (
    DEFAULT_PAGE,
    DEFAULT_PAGE_LIMIT,
    DOCS_URL,
    MAX_PAGE,
    MAX_PAGE_LIMIT,
    OPENAPI_URL,
    SERVICE_NAME,
    SERVICE_VERSION,
    total_pages,
)
from .db import init_db
from .error_handlers import register_error_handlers
from .recipes import RecipeService
from .schemas import (
    CredentialsRequest,
    ErrorResponse,
    HealthResponse,
    LoginResponse,
    MessageResponse,
    Pagination,
    ProfileResponse,
    RecipeCreate,
    RecipeListResponse,
    RecipeOut,
    RecipeUpdate,
    RegisterRequest,
    RegisterResponse,
    SessionClaim,
    UserPublic,
)
from .storage import RecipeStore, UserStore
from .storage_memory import MemoryRecipeStore, MemoryUserStore
from .storage_sql import SqlRecipeStore, SqlUserStore

logger = logging.getLogger(__name__)

_ERRORS: Dict[int | str, Dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    401: {"model": ErrorResponse, "description": "Authentication required"},
    403: {"model": ErrorResponse, "description": "Not authorized"},
    404: {"model": ErrorResponse, "description": "Recipe not found"},
    409: {"model": ErrorResponse, "description": "Concurrent modification"},
}


def _errors(*codes: int) -> Dict[int | str, Dict[str, Any]]:
    return {c: _ERRORS[c] for c in codes}


def get_accounts(request: Request) -> CredentialStore:
    return request.app.state.accounts


def get_recipe_service(request: Request) -> RecipeService:
    return request.app.state.recipe_service


# ---------------------------------------------------------------------------
# meta
# ---------------------------------------------------------------------------

meta_router = APIRouter(tags=["Meta"])


@meta_router.get("/")
def index() -> Dict[str, Any]:
    return {
        "message": f"Welcome to {SERVICE_NAME}",
        "documentation": DOCS_URL,
        "health": "/health",
        "version": SERVICE_VERSION,
        "endpoints": {
            "auth": {
                "register": "POST /auth/register",
                "login": "POST /auth/login",
                "profile": "GET /auth/profile",
            },
            "recipes": {
                "create": "POST /recipes",
                "getAll": "GET /recipes",
                "getById": "GET /recipes/{id}",
                "update": "PUT /recipes/{id}",
                "delete": "DELETE /recipes/{id}",
                "byUser": "GET /recipes/user/{userId}",
            },
        },
    }


@meta_router.get("/health", response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    return HealthResponse(
        status="OK",
        timestamp=datetime.datetime.now(datetime.timezone.utc).isoformat(),
        uptime=round(time.monotonic() - request.app.state.started_at, 3),
    )


# ---------------------------------------------------------------------------
# auth
# ---------------------------------------------------------------------------

auth_router = APIRouter(prefix="/auth", tags=["Authentication"])


@auth_router.post("/register", status_code=201, response_model=RegisterResponse, responses=_errors(400))
def register(body: RegisterRequest, accounts: CredentialStore = Depends(get_accounts)):
    """Register a new user."""
    user = accounts.register(body.username, body.password)
    return RegisterResponse(message="User registered successfully", user_id=user.id)


@auth_router.post("/login", response_model=LoginResponse, responses=_errors(400, 401))
def login(body: CredentialsRequest, request: Request, accounts: CredentialStore = Depends(get_accounts)):
    """Login and get a JWT token."""
    user = accounts.verify_credentials(body.username, body.password)
    token = request.app.state.token_service.issue(user.id, user.username)
    logger.info("User %s logged in", user.id)
    return LoginResponse(
        token=token,
        message="Login successful",
        user=UserPublic(id=user.id, username=user.username),
    )


@auth_router.get("/profile", response_model=ProfileResponse, responses=_errors(401))
def profile(claim: SessionClaim = Depends(require_auth)):
    """Return the identity carried by the bearer token."""
    return ProfileResponse(
        message="Profile accessed successfully",
        user=UserPublic(id=claim.user_id, username=claim.username),
    )


# ---------------------------------------------------------------------------
# recipes
# ---------------------------------------------------------------------------

recipes_router = APIRouter(prefix="/recipes", tags=["Recipes"])


@recipes_router.post("", status_code=201, response_model=RecipeOut, responses=_errors(400, 401))
def create_recipe(
    body: RecipeCreate,
    claim: SessionClaim = Depends(require_auth),
    service: RecipeService = Depends(get_recipe_service),
):
    """Add a new recipe owned by the caller."""
    recipe = service.create(claim, body)
    return service.to_out(recipe, UserPublic(id=claim.user_id, username=claim.username))


@recipes_router.get("", response_model=RecipeListResponse, responses=_errors(400))
def list_recipes(
    page: int = Query(DEFAULT_PAGE, ge=1, le=MAX_PAGE),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1),
    service: RecipeService = Depends(get_recipe_service),
):
    """List recipes, newest first. `limit` above the cap is clamped, not rejected."""
    limit = min(limit, MAX_PAGE_LIMIT)
    result = service.list(page, limit)
    return RecipeListResponse(
        recipes=service.with_authors(result.items),
        pagination=Pagination(page=page, limit=limit, total=result.total, pages=total_pages(result.total, limit)),
    )


@recipes_router.get("/user/{user_id}", response_model=List[RecipeOut], responses=_errors(400))
def list_user_recipes(user_id: str, service: RecipeService = Depends(get_recipe_service)):
    """List one user's recipes, newest first."""
    return service.with_authors(service.list_by_owner(user_id))


@recipes_router.get("/{recipe_id}", response_model=RecipeOut, responses=_errors(400, 404))
def get_recipe(recipe_id: str, service: RecipeService = Depends(get_recipe_service)):
    """Get recipe by ID."""
    return service.with_authors([service.get(recipe_id)])[0]


@recipes_router.put("/{recipe_id}", response_model=RecipeOut, responses=_errors(400, 401, 403, 404, 409))
def update_recipe(
    recipe_id: str,
    body: RecipeUpdate,
    claim: SessionClaim = Depends(require_auth),
    service: RecipeService = Depends(get_recipe_service),
):
    """Update a recipe; only its creator may do so."""
    recipe = service.update(claim, recipe_id, body)
    return service.to_out(recipe, UserPublic(id=claim.user_id, username=claim.username))


@recipes_router.delete("/{recipe_id}", response_model=MessageResponse, responses=_errors(400, 401, 403, 404, 409))
def delete_recipe(
    recipe_id: str,
    claim: SessionClaim = Depends(require_auth),
    service: RecipeService = Depends(get_recipe_service),
):
    """Delete a recipe; only its creator may do so."""
    service.delete(claim, recipe_id)
    return MessageResponse(message="Recipe deleted successfully")


# ---------------------------------------------------------------------------
# factory
# ---------------------------------------------------------------------------

def build_stores(settings: Settings) -> Tuple[UserStore, RecipeStore, Optional[Any]]:
    """Return (users, recipes, engine) for the configured backend."""
    if settings.storage_backend == "memory":
        logger.warning("Using in-memory storage; data is lost on restart")
        return MemoryUserStore(), MemoryRecipeStore(), None
    engine = init_db(settings.database_url)
    return SqlUserStore(engine), SqlRecipeStore(engine), engine


@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    """Manage application lifecycle (startup and shutdown events)."""
    logger.info("Starting %s (storage=%s)", SERVICE_NAME, app_instance.state.settings.storage_backend)
    try:
        yield
    finally:
        engine = getattr(app_instance.state, "engine", None)
        if engine is not None:
            try:
                engine.dispose()
            except Exception:
                logger.exception("Error disposing database engine")
        logger.info("Shutdown event completed")


def create_app(
    settings: Settings | None = None,
    users: UserStore | None = None,
    recipes: RecipeStore | None = None,
) -> FastAPI:
    """Build the API.

    Without explicit settings the configuration is loaded from the
    environment and logging is configured; a missing secret or database
    address stops the process here. Stores may be injected (tests); when
    they are not, they come from `settings.storage_backend`.
    """
    if settings is None:
        settings = load_settings()
        configure_logging(settings)

    engine = None
    if users is None or recipes is None:
        default_users, default_recipes, engine = build_stores(settings)
        users = users or default_users
        recipes = recipes or default_recipes

    app = FastAPI(
        title=SERVICE_NAME,
        description="A recipe sharing API with JWT authentication",
        version=SERVICE_VERSION,
        docs_url=DOCS_URL,
        openapi_url=OPENAPI_URL,
        redoc_url=None,
        debug=settings.debug_mode,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Authentication", "description": "User authentication endpoints"},
            {"name": "Recipes", "description": "Recipe management endpoints"},
        ],
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.started_at = time.monotonic()
    app.state.token_service = TokenService(settings.jwt_secret, expiry_seconds=settings.token_expiry_seconds)
    app.state.accounts = CredentialStore(users, PasswordHasher())
    app.state.recipe_service = RecipeService(recipes, users)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_error_handlers(app)
    app.include_router(meta_router)
    app.include_router(auth_router)
    app.include_router(recipes_router)
    return app
