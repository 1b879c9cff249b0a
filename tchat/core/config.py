# tchat/core/config.py
import os
from typing import List
from dotenv import load_dotenv


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """
    Setup environment variables.
        - DEFAULT_ROOMS comma separated rooms provisioned at startup
        - TYPING_EXPIRY_SECONDS idle time after which a typing user is expired
        - TYPING_SWEEP_INTERVAL_SECONDS how often the typing sweep runs
        - SUBSCRIBER_QUEUE_SIZE bounded delivery queue per subscription
        - CORS_ORIGINS comma separated allowed origins ("*" for any)
    """

    # Load environment variables from the .env file
    load_dotenv()

    def __init__(self) -> None:
        self.DEFAULT_ROOMS: List[str] = _split_csv(os.getenv("DEFAULT_ROOMS", "Main")) or ["Main"]

        self.TYPING_EXPIRY_SECONDS: float = float(os.getenv("TYPING_EXPIRY_SECONDS", "3.0"))
        self.TYPING_SWEEP_INTERVAL_SECONDS: float = float(os.getenv("TYPING_SWEEP_INTERVAL_SECONDS", "1.0"))

        self.SUBSCRIBER_QUEUE_SIZE: int = int(os.getenv("SUBSCRIBER_QUEUE_SIZE", "256"))

        self.CORS_ORIGINS: List[str] = _split_csv(os.getenv("CORS_ORIGINS", "*"))

settings = Settings()
