from .mongodb import create_mongo_client, init_mongodb, close_mongo_client

__all__ = [
    "create_mongo_client",
    "init_mongodb",
    "close_mongo_client",
]
