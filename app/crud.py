import json
import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from tortoise.exceptions import DoesNotExist, IntegrityError
from tortoise.expressions import Q, Subquery
from tortoise.transactions import in_transaction

from .exceptions import NotFound, Unauthorized, ValidationFailure
from .security import get_password_hash, verify_password
from .models import (
    User as UserModel,
    Category as CategoryModel,
    TypeList as TypeListModel,
    Pokemon as PokemonModel,
    PokemonType as PokemonTypeModel,
)
from .schemas import UserCreate
from .services import image_store

log = logging.getLogger("uvicorn")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
# Upper bound of the INTEGER id columns
MAX_ID = 2**31 - 1

# --- Users ---

async def get_user_by_email(email: str) -> Optional[UserModel]:
    try:
        return await UserModel.get(email=email)
    except DoesNotExist:
        return None

async def get_user_by_id(user_id: int) -> Optional[UserModel]:
    try:
        return await UserModel.get(id=user_id)
    except DoesNotExist:
        return None

async def create_user(user_data: UserCreate) -> Optional[UserModel]:
    hashed_password = get_password_hash(user_data.password)
    try:
        user_obj = await UserModel.create(
            username=user_data.username,
            email=user_data.email,
            password=hashed_password
        )
        return user_obj
    except IntegrityError:
        return None

async def authenticate_user(email: str, password: str) -> Optional[UserModel]:
    user = await UserModel.get_or_none(email=email)
    if not user:
        return None
    if not verify_password(password, user.password):
        return None
    return user

# --- Categories ---

async def resolve_category(name: str) -> CategoryModel:
    """
    Find-or-create a category by exact name.

    categories.name is unique, so a concurrent insert of the same name fails
    with IntegrityError inside the savepoint and the winner's row is re-read.
    """
    category = await CategoryModel.get_or_none(name=name)
    if category:
        return category
    try:
        async with in_transaction():
            category = await CategoryModel.create(name=name)
        log.info(f"Created category '{name}' (id={category.id})")
        return category
    except IntegrityError:
        log.info(f"Category '{name}' was created concurrently, re-reading")
        return await CategoryModel.get(name=name)

async def list_categories() -> List[CategoryModel]:
    return await CategoryModel.all().order_by("id")

async def get_category(category_id: int) -> CategoryModel:
    category = await CategoryModel.get_or_none(id=category_id)
    if category is None:
        raise NotFound("Category", category_id)
    return category

async def create_category(name: str) -> CategoryModel:
    try:
        return await CategoryModel.create(name=name)
    except IntegrityError:
        raise ValidationFailure(f"Category '{name}' already exists")

async def update_category(category_id: int, name: str) -> CategoryModel:
    category = await get_category(category_id)
    category.name = name
    try:
        await category.save()
    except IntegrityError:
        raise ValidationFailure(f"Category '{name}' already exists")
    return category

async def delete_category(category_id: int) -> CategoryModel:
    """Delete a category; its pokemons go with it through the FK cascade."""
    category = await get_category(category_id)
    orphaned_images = await PokemonModel.filter(category_id=category_id).values_list("image_url", flat=True)
    await category.delete()
    for filename in orphaned_images:
        image_store.schedule_image_removal(filename)
    return category

# --- Type vocabulary ---

async def list_type_lists() -> List[TypeListModel]:
    return await TypeListModel.all().order_by("id")

async def get_type_list(type_id: int) -> TypeListModel:
    type_list = await TypeListModel.get_or_none(id=type_id)
    if type_list is None:
        raise NotFound("Type", type_id)
    return type_list

async def create_type_list(name: str) -> TypeListModel:
    try:
        return await TypeListModel.create(name=name)
    except IntegrityError:
        raise ValidationFailure(f"Type '{name}' already exists")

async def update_type_list(type_id: int, name: str) -> TypeListModel:
    type_list = await get_type_list(type_id)
    type_list.name = name
    try:
        await type_list.save()
    except IntegrityError:
        raise ValidationFailure(f"Type '{name}' already exists")
    return type_list

async def delete_type_list(type_id: int) -> TypeListModel:
    type_list = await get_type_list(type_id)
    await type_list.delete()
    return type_list

# --- Pokemon type associations ---

def parse_type_refs(raw: Any) -> List[int]:
    """
    Normalize the ``type`` field into a list of TypeList ids.

    Accepts a JSON string or an already decoded list whose elements are
    ``{"id": n}`` objects or bare integers. Duplicates keep their first position.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationFailure("Field 'type' must be a JSON encoded list")
    if not isinstance(raw, list):
        raise ValidationFailure("Field 'type' must be a list of type references")

    type_ids: List[int] = []
    for ref in raw:
        if isinstance(ref, dict):
            ref = ref.get("id")
        if isinstance(ref, bool):
            ref = None
        if isinstance(ref, str):
            try:
                ref = int(ref)
            except ValueError:
                raise ValidationFailure(f"Invalid type reference: {ref!r}")
        if not isinstance(ref, int) or not 1 <= ref <= MAX_ID:
            raise ValidationFailure(f"Invalid type reference: {ref!r}")
        if ref not in type_ids:
            type_ids.append(ref)
    return type_ids

async def replace_pokemon_types(pokemon: PokemonModel, type_ids: List[int]) -> List[TypeListModel]:
    """
    Make the pokemon's associations exactly ``type_ids``.

    Callers run this inside the request transaction, so an unknown id rolls
    back the deletions as well.
    """
    await PokemonTypeModel.filter(pokemon_id=pokemon.id).delete()

    resolved: List[TypeListModel] = []
    for type_id in type_ids:
        type_list = await TypeListModel.get_or_none(id=type_id)
        if type_list is None:
            raise NotFound("Type", type_id)
        await PokemonTypeModel.create(pokemon=pokemon, type=type_list)
        resolved.append(type_list)
    return resolved

# --- Pokemon views ---

def _category_ref(category: Optional[CategoryModel]) -> Optional[Dict[str, Any]]:
    if category is None:
        return None
    return {"id": category.id, "name": category.name}

def _pokemon_fields(pokemon: PokemonModel) -> Dict[str, Any]:
    return {
        "id": pokemon.id,
        "name": pokemon.name,
        "image_url": pokemon.image_url,
        "latitude": pokemon.latitude,
        "longitude": pokemon.longitude,
        "category_id": pokemon.category_id,
        "user_id": pokemon.user_id,
        "created_at": pokemon.created_at,
        "updated_at": pokemon.updated_at,
    }

async def build_views(pokemons: Iterable[PokemonModel]) -> List[Dict[str, Any]]:
    """
    Assemble EntryViews for a batch of pokemons.

    Two queries regardless of batch size: one for the categories and one
    joined query for every association of the batch.
    """
    pokemons = list(pokemons)
    if not pokemons:
        return []
    ids = [p.id for p in pokemons]

    category_ids = list({p.category_id for p in pokemons if p.category_id is not None})
    categories = {c.id: c for c in await CategoryModel.filter(id__in=category_ids)} if category_ids else {}

    links = await PokemonTypeModel.filter(pokemon_id__in=ids).select_related("type").order_by("id")
    types_by_pokemon: Dict[int, List[Dict[str, Any]]] = {pid: [] for pid in ids}
    for link in links:
        types_by_pokemon[link.pokemon_id].append({"id": link.type.id, "name": link.type.name})

    views = []
    for pokemon in pokemons:
        view = _pokemon_fields(pokemon)
        view["category"] = _category_ref(categories.get(pokemon.category_id))
        view["types"] = types_by_pokemon[pokemon.id]
        views.append(view)
    return views

async def get_pokemon(pokemon_id: int) -> PokemonModel:
    pokemon = await PokemonModel.get_or_none(id=pokemon_id)
    if pokemon is None:
        raise NotFound("Pokemon", pokemon_id)
    return pokemon

async def get_pokemon_view(pokemon_id: int) -> Dict[str, Any]:
    pokemon = await get_pokemon(pokemon_id)
    return (await build_views([pokemon]))[0]

def _parse_type_filter(type_in: Any) -> List[int]:
    if isinstance(type_in, str):
        parts = [p.strip() for p in type_in.split(",") if p.strip()]
    else:
        parts = list(type_in)
    type_ids = [_as_id(p) for p in parts]
    if None in type_ids:
        raise ValidationFailure("Filter 'type_in' must be a comma separated list of type ids")
    return type_ids

def _as_id(value: Any) -> Optional[int]:
    """Parse a primary key value, None when it is not a valid id."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    if not 1 <= number <= MAX_ID:
        return None
    return number

async def list_pokemons(
    page: int = DEFAULT_PAGE,
    limit: int = DEFAULT_LIMIT,
    name_like: Optional[str] = None,
    category: Optional[str] = None,
    type_in: Optional[Any] = None,
) -> Dict[str, Any]:
    if page < 1 or limit < 1:
        raise ValidationFailure("'page' and 'limit' must be positive integers")

    query = PokemonModel.all()
    if name_like:
        query = query.filter(name__icontains=name_like)
    if category:
        category = str(category).strip()
        category_id = _as_id(category)
        if category_id is not None:
            query = query.filter(category_id=category_id)
        else:
            query = query.filter(category__name__icontains=category)
    if type_in:
        type_ids = _parse_type_filter(type_in)
        if type_ids:
            tagged = PokemonTypeModel.filter(type_id__in=type_ids).values("pokemon_id")
            query = query.filter(id__in=Subquery(tagged))

    total = await query.count()
    pokemons = await query.order_by("id").offset((page - 1) * limit).limit(limit)
    return {
        "total": total,
        "per_page": limit,
        "page": page,
        "last_page": max(1, math.ceil(total / limit)),
        "data": await build_views(pokemons),
    }

async def search_pokemons(q: str) -> List[Dict[str, Any]]:
    """Match on the pokemon name, its category name or any of its type names."""
    tagged = PokemonTypeModel.filter(type__name__icontains=q).values("pokemon_id")
    pokemons = await PokemonModel.filter(
        Q(name__icontains=q) | Q(category__name__icontains=q) | Q(id__in=Subquery(tagged))
    ).order_by("id")
    return await build_views(pokemons)

# --- Pokemon writes ---

async def create_pokemon(
    user: UserModel,
    name: str,
    category_name: str,
    type_ids: List[int],
    image_content: bytes,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> Dict[str, Any]:
    # The file is placed first so the row never references a missing image
    filename = await image_store.store_image(image_content, name, user.id)
    try:
        async with in_transaction():
            category = await resolve_category(category_name)
            pokemon = await PokemonModel.create(
                name=name,
                image_url=filename,
                category=category,
                user=user,
                latitude=latitude,
                longitude=longitude,
            )
            await replace_pokemon_types(pokemon, type_ids)
    except Exception:
        log.warning(f"Creating pokemon '{name}' failed, discarding image {filename}")
        await image_store.delete_image(filename)
        raise

    log.info(f"Pokemon {pokemon.id} '{name}' created by user {user.id}")
    return (await build_views([pokemon]))[0]

async def update_pokemon(
    pokemon_id: int,
    user: UserModel,
    name: Optional[str] = None,
    category_name: Optional[str] = None,
    type_ids: Optional[List[int]] = None,
    image_content: Optional[bytes] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> Dict[str, Any]:
    pokemon = await get_pokemon(pokemon_id)
    if pokemon.user_id != user.id:
        raise Unauthorized("Only the owner can modify this pokemon")

    old_filename = pokemon.image_url
    new_filename = None
    if image_content is not None:
        new_filename = await image_store.store_image(image_content, name or pokemon.name, user.id)

    try:
        async with in_transaction():
            if name is not None:
                pokemon.name = name
            if latitude is not None:
                pokemon.latitude = latitude
            if longitude is not None:
                pokemon.longitude = longitude
            if category_name is not None:
                pokemon.category = await resolve_category(category_name)
            if new_filename:
                pokemon.image_url = new_filename
            await pokemon.save()
            if type_ids is not None:
                await replace_pokemon_types(pokemon, type_ids)
    except Exception:
        if new_filename:
            await image_store.delete_image(new_filename)
        raise

    if new_filename and old_filename and old_filename != new_filename:
        image_store.schedule_image_removal(old_filename)

    log.info(f"Pokemon {pokemon.id} updated by user {user.id}")
    return (await build_views([pokemon]))[0]

async def delete_pokemon(pokemon_id: int, user: UserModel) -> Dict[str, Any]:
    pokemon = await get_pokemon(pokemon_id)
    if pokemon.user_id != user.id:
        raise Unauthorized("Only the owner can delete this pokemon")

    view = (await build_views([pokemon]))[0]
    # type associations are removed by the FK cascade
    await pokemon.delete()
    image_store.schedule_image_removal(pokemon.image_url)
    log.info(f"Pokemon {pokemon_id} deleted by user {user.id}")
    return view
