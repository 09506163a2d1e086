from sqlalchemy import JSON, String
from sqlalchemy.dialects.postgresql import ARRAY, JSONB

# JSONB / text[] on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONDocument = JSON().with_variant(JSONB(), "postgresql")
StringList = JSON().with_variant(ARRAY(String(255)), "postgresql")
