from tortoise.models import Model
from tortoise import fields

class User(Model):
    id = fields.IntField(pk=True)
    username = fields.CharField(max_length=50)
    email = fields.CharField(max_length=254, unique=True)
    password = fields.CharField(max_length=255)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    pokemons: fields.ReverseRelation["Pokemon"]

    class Meta:
        table = "users"

    def __str__(self):
        return self.username

class Category(Model):
    id = fields.IntField(pk=True)
    name = fields.CharField(max_length=255, unique=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    pokemons: fields.ReverseRelation["Pokemon"]

    class Meta:
        table = "categories"

    def __str__(self):
        return self.name

class TypeList(Model):
    id = fields.IntField(pk=True)
    name = fields.CharField(max_length=100, unique=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    pokemon_links: fields.ReverseRelation["PokemonType"]

    class Meta:
        table = "type_lists"

    def __str__(self):
        return self.name

class Pokemon(Model):
    id = fields.IntField(pk=True)
    name = fields.CharField(max_length=255, index=True)
    image_url = fields.CharField(max_length=512, null=True)
    latitude = fields.FloatField(null=True)
    longitude = fields.FloatField(null=True)

    category: fields.ForeignKeyRelation[Category] = fields.ForeignKeyField(
        "models.Category", related_name="pokemons", on_delete=fields.CASCADE
    )
    user: fields.ForeignKeyRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="pokemons", on_delete=fields.CASCADE
    )

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    type_links: fields.ReverseRelation["PokemonType"]

    class Meta:
        table = "pokemons"

    def __str__(self):
        return self.name

class PokemonType(Model):
    """Join row tagging a Pokemon with one TypeList entry."""
    id = fields.IntField(pk=True)
    pokemon: fields.ForeignKeyRelation[Pokemon] = fields.ForeignKeyField(
        "models.Pokemon", related_name="type_links", on_delete=fields.CASCADE
    )
    type: fields.ForeignKeyRelation[TypeList] = fields.ForeignKeyField(
        "models.TypeList", related_name="pokemon_links", on_delete=fields.CASCADE
    )
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "types"
        unique_together = (("pokemon", "type"),)
