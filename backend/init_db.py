from .db import Base, engine
from . import models  # noqa: F401  (테이블 등록)

def init():
    Base.metadata.create_all(bind=engine)

if __name__ == "__main__":
    init()
