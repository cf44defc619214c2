from avatar_welcome.db.repositories.creators import CreatorsRepository
from avatar_welcome.db.repositories.customers import CustomersRepository
from avatar_welcome.db.repositories.videos import VideosRepository

__all__ = ["CreatorsRepository", "CustomersRepository", "VideosRepository"]
