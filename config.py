import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# ==================== CONFIGURATION ====================
class Config:
    TOOL_NAME      = os.getenv("TOOL_NAME", "OGTT-DM Risk Stratifier")
    ENGINE_VERSION = os.getenv("ENGINE_VERSION", "1.0.0")

    HOST      = os.getenv("HOST", "0.0.0.0")
    PORT      = int(os.getenv("PORT", "8000"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
