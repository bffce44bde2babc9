from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# --- Category / TypeList Schemas ---
class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)

class CategoryRef(BaseModel):
    id: int
    name: str

    model_config = {
        "from_attributes": True,
    }

class Category(CategoryRef):
    created_at: datetime
    updated_at: datetime

class TypeListCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)

class TypeRef(BaseModel):
    id: int
    name: str

    model_config = {
        "from_attributes": True,
    }

class TypeList(TypeRef):
    created_at: datetime
    updated_at: datetime

# --- Pokemon Schemas ---
# Create/update input arrives as multipart form fields and is parsed in main.py.

class PokemonView(BaseModel):
    id: int
    name: str
    image_url: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    category_id: Optional[int] = None
    user_id: int
    created_at: datetime
    updated_at: datetime
    category: Optional[CategoryRef] = None
    types: List[TypeRef] = Field(default_factory=list)

class PokemonResponse(BaseModel):
    message: Optional[str] = None
    data: PokemonView

class PokemonListResponse(BaseModel):
    message: str
    data: List[PokemonView]

class PokemonPage(BaseModel):
    total: int
    per_page: int
    page: int
    last_page: int
    data: List[PokemonView]

# --- User Schemas ---

class UserBase(BaseModel):
    username: str
    email: str

class UserCreate(BaseModel):
    username: str = Field(min_length=4, max_length=24)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=254)
    password: str = Field(min_length=8, max_length=30)  # plain text, hashed before saving

class UserLogin(BaseModel):
    email: str
    password: str

class User(UserBase):
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = {
        "from_attributes": True,
    }

class AuthResponse(BaseModel):
    user: User
    access_token: str

class Token(BaseModel):
    access_token: str
    token_type: str
