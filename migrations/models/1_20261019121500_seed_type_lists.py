from tortoise import BaseDBAsyncClient


async def upgrade(db: BaseDBAsyncClient) -> str:
    return """
        INSERT INTO "type_lists" ("name") VALUES
    ('Normal'), ('Fire'), ('Water'), ('Grass'), ('Electric'), ('Ice'),
    ('Fighting'), ('Poison'), ('Ground'), ('Flying'), ('Psychic'), ('Bug'),
    ('Rock'), ('Ghost'), ('Dragon'), ('Dark'), ('Steel'), ('Fairy')
ON CONFLICT ("name") DO NOTHING;"""


async def downgrade(db: BaseDBAsyncClient) -> str:
    return """
        DELETE FROM "type_lists" WHERE "name" IN (
    'Normal', 'Fire', 'Water', 'Grass', 'Electric', 'Ice',
    'Fighting', 'Poison', 'Ground', 'Flying', 'Psychic', 'Bug',
    'Rock', 'Ghost', 'Dragon', 'Dark', 'Steel', 'Fairy'
);"""
