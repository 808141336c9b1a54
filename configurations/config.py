from pymongo.mongo_client import MongoClient
from pymongo.server_api import ServerApi
from motor.motor_asyncio import AsyncIOMotorClient
import os
from typing import Optional
from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DB_NAME: str = os.getenv("MONGO_DB_NAME", "beachclub_db")
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", 6379))
    REDIS_DB: int = int(os.getenv("REDIS_DB", 0))
    REDIS_PASSWORD: Optional[str] = os.getenv("REDIS_PASSWORD")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CLUB_TIMEZONE: str = os.getenv("CLUB_TIMEZONE", "Europe/Paris")

    # Alert policy (minutes)
    ORDER_NEW_DELAY_MINUTES: int = int(os.getenv("ORDER_NEW_DELAY_MINUTES", 10))
    ORDER_PREPARING_DELAY_MINUTES: int = int(os.getenv("ORDER_PREPARING_DELAY_MINUTES", 20))
    ORDER_URGENT_MINUTES: int = int(os.getenv("ORDER_URGENT_MINUTES", 15))
    RESERVATION_IMMINENT_MINUTES: int = int(os.getenv("RESERVATION_IMMINENT_MINUTES", 30))
    LONG_OCCUPATION_MINUTES: int = int(os.getenv("LONG_OCCUPATION_MINUTES", 90))

    # Live views
    TICK_SECONDS: int = int(os.getenv("TICK_SECONDS", 30))
    INCIDENT_LOG_SIZE: int = int(os.getenv("INCIDENT_LOG_SIZE", 50))
    ORDER_FETCH_LIMIT: int = int(os.getenv("ORDER_FETCH_LIMIT", 50))
    SUGGESTION_LIMIT: int = int(os.getenv("SUGGESTION_LIMIT", 5))

    # Reservations
    DAILY_GUEST_CAPACITY: int = int(os.getenv("DAILY_GUEST_CAPACITY", 50))
    CONFLICT_WINDOW_DAYS: int = int(os.getenv("CONFLICT_WINDOW_DAYS", 30))
    SUMMARY_CACHE_TTL: int = int(os.getenv("SUMMARY_CACHE_TTL", 60))

settings = Settings()


client = MongoClient(settings.MONGO_URI, server_api=ServerApi('1'))

db = client[settings.MONGO_DB_NAME]

def get_db():

    yield db


def get_async_db():
    """Motor database handle, used for change streams"""
    async_client = AsyncIOMotorClient(settings.MONGO_URI, server_api=ServerApi('1'))
    return async_client[settings.MONGO_DB_NAME]
