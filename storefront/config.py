"""
Configuration management for the storefront checkout service.
Loads settings from environment variables and AWS Secrets Manager.
"""
import os
import json
import logging
import boto3
from decimal import Decimal
from typing import Optional

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Config:
    """Application configuration"""

    # Application settings
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    REGION: str = os.getenv("REGION", "ap-south-1")

    # Redis settings
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_AUTH_TOKEN: Optional[str] = os.getenv("REDIS_AUTH_TOKEN")
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_SSL: bool = _env_bool("REDIS_SSL", "false")

    # Redis connection settings
    REDIS_SOCKET_CONNECT_TIMEOUT: int = 5
    REDIS_SOCKET_TIMEOUT: int = 5
    REDIS_RETRY_ON_TIMEOUT: bool = True
    REDIS_MAX_CONNECTIONS: int = 50

    # Payment gateway settings
    RAZORPAY_API_URL: str = os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com")
    RAZORPAY_KEY_ID: Optional[str] = os.getenv("RAZORPAY_KEY_ID")
    RAZORPAY_KEY_SECRET: Optional[str] = os.getenv("RAZORPAY_KEY_SECRET")
    # Key handed to the client-side checkout widget
    RAZORPAY_PUBLIC_KEY_ID: Optional[str] = os.getenv("RAZORPAY_PUBLIC_KEY_ID") or os.getenv("RAZORPAY_KEY_ID")
    PAYMENT_TIMEOUT_SECONDS: float = float(os.getenv("PAYMENT_TIMEOUT_SECONDS", "10"))

    # Checkout settings
    CURRENCY: str = os.getenv("CURRENCY", "INR")
    MIN_CHARGE_MINOR_UNITS: int = int(os.getenv("MIN_CHARGE_MINOR_UNITS", "100"))  # 1 INR
    DEFAULT_COUNTRY: str = os.getenv("DEFAULT_COUNTRY", "India")
    PHONE_COUNTRY_CODE: str = os.getenv("PHONE_COUNTRY_CODE", "91")
    ORDER_NUMBER_PREFIX: str = os.getenv("ORDER_NUMBER_PREFIX", "ZYN")

    # Shipping settings (kg, recorded on the order, never charged at checkout)
    DEFAULT_SHIPMENT_WEIGHT: Decimal = Decimal(os.getenv("DEFAULT_SHIPMENT_WEIGHT", "1.5"))

    @classmethod
    def load_redis_secrets(cls) -> None:
        """Load Redis authentication token from AWS Secrets Manager"""
        if cls.REDIS_AUTH_TOKEN:
            return  # Already loaded from environment

        secret_data = cls._read_secret(os.getenv("REDIS_SECRET_NAME"))
        if not secret_data:
            return

        cls.REDIS_AUTH_TOKEN = secret_data.get("auth_token")
        if "endpoint" in secret_data:
            cls.REDIS_HOST = secret_data["endpoint"]

    @classmethod
    def load_payment_secrets(cls) -> None:
        """Load Razorpay API credentials from AWS Secrets Manager"""
        if cls.RAZORPAY_KEY_SECRET:
            return

        secret_data = cls._read_secret(os.getenv("RAZORPAY_SECRET_NAME"))
        if not secret_data:
            return

        cls.RAZORPAY_KEY_SECRET = secret_data.get("key_secret")
        if secret_data.get("key_id"):
            cls.RAZORPAY_KEY_ID = secret_data["key_id"]
            if not cls.RAZORPAY_PUBLIC_KEY_ID:
                cls.RAZORPAY_PUBLIC_KEY_ID = secret_data["key_id"]

    @classmethod
    def _read_secret(cls, secret_name: Optional[str]) -> Optional[dict]:
        if not secret_name:
            return None  # No secret name provided

        try:
            client = boto3.client("secretsmanager", region_name=cls.REGION)
            response = client.get_secret_value(SecretId=secret_name)
            return json.loads(response["SecretString"])
        except Exception as e:
            logger.warning(f"Could not load secret {secret_name} from Secrets Manager: {e}")
            # Continue without the secret (calls needing it will fail loudly)
            return None


# Load secrets at module import
Config.load_redis_secrets()
Config.load_payment_secrets()
