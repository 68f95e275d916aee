import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    API_KEY: str = os.getenv("API_KEY", "")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    RQ_QUEUE_NAME: str = os.getenv("RQ_QUEUE_NAME", "audit")

    # Config store (admin-owned rows kept as JSON lists in Redis)
    CONFIG_KEY_PREFIX: str = os.getenv("CONFIG_KEY_PREFIX", "salesbot:config:")
    CONFIG_CACHE_TTL_SEC: float = float(os.getenv("CONFIG_CACHE_TTL_SEC", "4"))
    CONFIG_WRITE_LOCK_MS: int = int(os.getenv("CONFIG_WRITE_LOCK_MS", "5000"))

    # Device identity sent upstream when the session does not report its own number
    DEVICE_PHONE: str = os.getenv("DEVICE_PHONE", "")
    DEVICE_NAME: str = os.getenv("DEVICE_NAME", "Emex Device")

    # Provisioning upstream (trial generation)
    PROVISIONING_URL: str = os.getenv("PROVISIONING_URL", "")
    PROVISIONING_USER: str = os.getenv("PROVISIONING_USER", "")
    PROVISIONING_PASSWORD: str = os.getenv("PROVISIONING_PASSWORD", "")
    PROVISIONING_TIMEOUT_SEC: float = float(os.getenv("PROVISIONING_TIMEOUT_SEC", "30"))
    PROVISIONING_USER_AGENT: str = os.getenv("PROVISIONING_USER_AGENT", "+TVBot")
    PROVISIONING_SOURCE_IP: str = os.getenv("PROVISIONING_SOURCE_IP", "")

    # Chat transport bridge
    TRANSPORT_BASE_URL: str = os.getenv("TRANSPORT_BASE_URL", "http://localhost:3001")
    TRANSPORT_TIMEOUT_SEC: float = float(os.getenv("TRANSPORT_TIMEOUT_SEC", "15"))

    # OCR
    OCR_SOFT_TIMEOUT_SEC: float = float(os.getenv("OCR_SOFT_TIMEOUT_SEC", "8"))
    OCR_LANG: str = os.getenv("OCR_LANG", "eng")
    TESSERACT_CMD: str = os.getenv("TESSERACT_CMD", "")

    # Follow-ups
    FOLLOW_UP_DELAY_SEC: int = int(os.getenv("FOLLOW_UP_DELAY_SEC", str(4 * 60 * 60)))
    FOLLOW_UP_TICK_SEC: int = int(os.getenv("FOLLOW_UP_TICK_SEC", "60"))
    FOLLOW_UP_WORKER_ENABLED: bool = os.getenv("FOLLOW_UP_WORKER_ENABLED", "true").lower() == "true"
    FOLLOW_UP_STORAGE_PATH: str = os.getenv("FOLLOW_UP_STORAGE_PATH", "data/followups.json")

    ECHO_FINGERPRINT_TTL_MS: int = int(os.getenv("ECHO_FINGERPRINT_TTL_MS", "15000"))
    # Sent message ids and processed agent ids are forgotten after this long
    ECHO_ID_TTL_MS: int = int(os.getenv("ECHO_ID_TTL_MS", str(10 * 60 * 1000)))

    # Confirmation sub-state: unanswered confirmations lapse after this many seconds
    CONFIRM_TIMEOUT_SEC: int = int(os.getenv("CONFIRM_TIMEOUT_SEC", "600"))

    # Links on these hosts are offered first in {#http1}/{#http2}
    SHORT_LINK_HOSTS: str = os.getenv(
        "SHORT_LINK_HOSTS", "bit.ly,t.co,tinyurl.com,is.gd,goo.gl,cutt.ly,rb.gy"
    )

    # Audit sink
    AUDIT_SINK_URL: str = os.getenv("AUDIT_SINK_URL", "")
    AUDIT_TIMEOUT_SEC: float = float(os.getenv("AUDIT_TIMEOUT_SEC", "5"))
    AUDIT_ENQUEUE: bool = os.getenv("AUDIT_ENQUEUE", "true").lower() == "true"

    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"
    ADMIN_RBAC_ENABLED: bool = os.getenv("ADMIN_RBAC_ENABLED", "true").lower() == "true"
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")

settings = Settings()
