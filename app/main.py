from fastapi import FastAPI, HTTPException, Path, Query, Request, status, APIRouter, Depends, File, Form, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from tortoise.exceptions import BaseORMException, IntegrityError
from typing import List, Optional, Annotated
import logging

from . import schemas, crud, security
from .config import settings
from .db import lifespan
from .exceptions import CatalogError
from .models import User as UserModel
from .services import image_store

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("uvicorn")

API_PREFIX = "/api/v1"

app = FastAPI(
    title="Pokemon Catalog API",
    description="Location-tagged pokemon catalog with categories, type tagging and image uploads.",
    version="1.0.0",
    lifespan=lifespan
)

auth_router = APIRouter(prefix="/auth", tags=["Authentication"])
pokemons_router = APIRouter(prefix="/pokemons", tags=["Pokemons"])
types_router = APIRouter(prefix="/types", tags=["Types"])
categories_router = APIRouter(prefix="/categories", tags=["Categories"])

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{API_PREFIX}/auth/token")

# --- Error handlers ---

@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path} failed: {exc.message} {exc.context}")
    else:
        log.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        messages.append({"field": field, "message": error.get("msg")})
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": messages})

@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    log.warning(f"{request.method} {request.url.path} violated a constraint: {exc}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "Request conflicts with existing data"})

@app.exception_handler(BaseORMException)
async def orm_error_handler(request: Request, exc: BaseORMException):
    log.error(f"{request.method} {request.url.path} storage failure: {exc}", exc_info=exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Storage failure"})

# --- Auth ---

async def get_current_user(token: Annotated[str, Depends(oauth2_scheme)]) -> UserModel:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    user_id = security.decode_token_for_user_id(token, credentials_exception)
    user = await crud.get_user_by_id(user_id)
    if user is None:
        raise credentials_exception
    return user

CurrentUser = Annotated[UserModel, Depends(get_current_user)]

@auth_router.post("/register", response_model=schemas.AuthResponse)
async def register(user_in: schemas.UserCreate):
    if await crud.get_user_by_email(email=user_in.email):
        raise HTTPException(status_code=400, detail="Email already registered")
    user = await crud.create_user(user_data=user_in)
    if not user:
        raise HTTPException(status_code=400, detail="Email already registered")
    log.info(f"Registered user {user.id} ({user.email})")
    return {"user": user, "access_token": security.create_user_token(user.id)}

@auth_router.post("/login", response_model=schemas.AuthResponse)
async def login(credentials: schemas.UserLogin):
    user = await crud.authenticate_user(email=credentials.email, password=credentials.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return {"user": user, "access_token": security.create_user_token(user.id)}

@auth_router.post("/token", response_model=schemas.Token)
async def login_for_access_token(form_data: Annotated[OAuth2PasswordRequestForm, Depends()]):
    """OAuth2 password flow for the interactive docs; `username` carries the email."""
    user = await crud.authenticate_user(email=form_data.username, password=form_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return {"access_token": security.create_user_token(user.id), "token_type": "bearer"}

@auth_router.get("/me", response_model=schemas.User)
async def read_current_user(user: CurrentUser):
    return user

# --- Pokemons ---

ResourceId = Annotated[int, Path(ge=1, le=crud.MAX_ID)]

@pokemons_router.get("", response_model=schemas.PokemonPage)
async def list_pokemons(
    page: int = Query(crud.DEFAULT_PAGE, ge=1, le=crud.MAX_ID),
    limit: int = Query(crud.DEFAULT_LIMIT, ge=1, le=100),
    name_like: Optional[str] = None,
    category: Optional[str] = None,
    type_in: Optional[str] = None,
):
    return await crud.list_pokemons(
        page=page, limit=limit, name_like=name_like, category=category, type_in=type_in
    )

@pokemons_router.post("", response_model=schemas.PokemonResponse, status_code=status.HTTP_201_CREATED)
async def create_pokemon(
    user: CurrentUser,
    name: str = Form(..., min_length=1, max_length=255),
    category: str = Form(..., min_length=1, max_length=255),
    type_refs: str = Form("[]", alias="type"),
    latitude: Optional[float] = Form(None),
    longitude: Optional[float] = Form(None),
    image: UploadFile = File(...),
):
    type_ids = crud.parse_type_refs(type_refs)
    content = await image_store.read_upload(image)
    data = await crud.create_pokemon(
        user=user,
        name=name,
        category_name=category,
        type_ids=type_ids,
        image_content=content,
        latitude=latitude,
        longitude=longitude,
    )
    return {"data": data}

@pokemons_router.get("/search/{q}", response_model=schemas.PokemonListResponse)
async def search_pokemons(q: str):
    data = await crud.search_pokemons(q)
    if not data:
        return {"message": "item not found", "data": []}
    return {"message": "search success", "data": data}

@pokemons_router.get("/{pokemon_id}", response_model=schemas.PokemonResponse)
async def read_pokemon(pokemon_id: ResourceId):
    return {"message": "pokemon found", "data": await crud.get_pokemon_view(pokemon_id)}

@pokemons_router.api_route(
    "/{pokemon_id}",
    methods=["PUT", "PATCH"],
    response_model=schemas.PokemonResponse,
    status_code=status.HTTP_201_CREATED,
)
async def update_pokemon(
    pokemon_id: ResourceId,
    user: CurrentUser,
    name: Optional[str] = Form(None, min_length=1, max_length=255),
    category: Optional[str] = Form(None, min_length=1, max_length=255),
    type_refs: Optional[str] = Form(None, alias="type"),
    latitude: Optional[float] = Form(None),
    longitude: Optional[float] = Form(None),
    image: Optional[UploadFile] = File(None),
):
    type_ids = crud.parse_type_refs(type_refs) if type_refs is not None else None
    content = await image_store.read_upload(image) if image is not None else None
    data = await crud.update_pokemon(
        pokemon_id,
        user=user,
        name=name,
        category_name=category,
        type_ids=type_ids,
        image_content=content,
        latitude=latitude,
        longitude=longitude,
    )
    return {"data": data}

@pokemons_router.delete("/{pokemon_id}", response_model=schemas.PokemonResponse)
async def delete_pokemon(pokemon_id: ResourceId, user: CurrentUser):
    data = await crud.delete_pokemon(pokemon_id, user)
    return {"message": "pokemon deleted", "data": data}

# --- Types ---

@types_router.get("", response_model=List[schemas.TypeList])
async def list_types():
    return await crud.list_type_lists()

@types_router.post("", response_model=schemas.TypeList, status_code=status.HTTP_201_CREATED)
async def create_type(type_in: schemas.TypeListCreate, user: CurrentUser):
    return await crud.create_type_list(type_in.name)

@types_router.get("/{type_id}", response_model=schemas.TypeList)
async def read_type(type_id: ResourceId):
    return await crud.get_type_list(type_id)

@types_router.api_route("/{type_id}", methods=["PUT", "PATCH"], response_model=schemas.TypeList)
async def update_type(type_id: ResourceId, type_in: schemas.TypeListCreate, user: CurrentUser):
    return await crud.update_type_list(type_id, type_in.name)

@types_router.delete("/{type_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_type(type_id: ResourceId, user: CurrentUser):
    await crud.delete_type_list(type_id)
    return None

# --- Categories ---

@categories_router.get("", response_model=List[schemas.Category])
async def list_categories():
    return await crud.list_categories()

@categories_router.post("", response_model=schemas.Category, status_code=status.HTTP_201_CREATED)
async def create_category(category_in: schemas.CategoryCreate, user: CurrentUser):
    return await crud.create_category(category_in.name)

@categories_router.get("/{category_id}", response_model=schemas.Category)
async def read_category(category_id: ResourceId):
    return await crud.get_category(category_id)

@categories_router.api_route("/{category_id}", methods=["PUT", "PATCH"], response_model=schemas.Category)
async def update_category(category_id: ResourceId, category_in: schemas.CategoryCreate, user: CurrentUser):
    return await crud.update_category(category_id, category_in.name)

@categories_router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(category_id: ResourceId, user: CurrentUser):
    await crud.delete_category(category_id)
    return None

# --- Include Routers in the main app ---
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(pokemons_router, prefix=API_PREFIX)
app.include_router(types_router, prefix=API_PREFIX)
app.include_router(categories_router, prefix=API_PREFIX)

app.mount("/uploads/pokemons", StaticFiles(directory=settings.upload_dir, check_dir=False), name="pokemon-images")

@app.get("/", tags=["General"])
async def read_root():
    """Provides a simple welcome message."""
    return {"message": "Welcome to the Pokemon Catalog API!"}
