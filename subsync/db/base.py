from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Tables register when subsync.db.models is imported (init_db, alembic/env.py)
